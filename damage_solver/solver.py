#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Nonlinear solver and strain-path driver for the damage models.
Cross-platform compatible for Windows, macOS, and Linux.
"""

import numpy as np
import matplotlib.pyplot as plt

from .errors import NonConvergenceError
from .material_models import tensor_to_mandel, von_mises


def solve(system, trial_state, tol, miter, verbose=False, x0=None):
    """
    Newton-Raphson solve of a system exposing nparams(), init_x(ts) and RJ(x, ts).

    Parameters:
    - system: object providing the residual and Jacobian
    - trial_state: immutable snapshot passed through to the system
    - tol: absolute tolerance on the residual norm
    - miter: maximum number of iterations
    - verbose: print the residual norm at each iteration
    - x0: optional initial guess overriding system.init_x

    Returns:
    - x: converged solution vector
    - iterations: number of Newton updates taken

    Raises NonConvergenceError if the tolerance is not met within miter
    iterations or the iterate stops being finite.
    """
    if x0 is None:
        x = np.array(system.init_x(trial_state), dtype=float)
    else:
        x = np.array(x0, dtype=float).reshape(system.nparams())

    R, J = system.RJ(x, trial_state)
    nR = np.linalg.norm(R)
    if verbose:
        print("Iter    |R|")
        print(f"{0:4d}    {nR:.6e}")

    for i in range(1, miter + 1):
        if nR < tol:
            if verbose:
                print(f"Converged in {i - 1} iterations")
            return x, i - 1
        try:
            dx = np.linalg.solve(np.atleast_2d(J), np.atleast_1d(R))
        except np.linalg.LinAlgError as err:
            raise NonConvergenceError(f"Singular Jacobian at iteration {i}: {err}",
                                      iterations=i, residual=nR) from err
        x = x - dx
        R, J = system.RJ(x, trial_state)
        nR = np.linalg.norm(R)
        if verbose:
            print(f"{i:4d}    {nR:.6e}")
        if not (np.all(np.isfinite(x)) and np.isfinite(nR)):
            raise NonConvergenceError(f"Newton iterate became non-finite at iteration {i}",
                                      iterations=i, residual=nR)

    if nR < tol:
        if verbose:
            print(f"Converged in {miter} iterations")
        return x, miter

    if verbose:
        print(f"Failed to converge after {miter} iterations, |R| = {nR:.6e}")
    raise NonConvergenceError(
        f"Newton solve did not converge in {miter} iterations (|R| = {nR:.3e}, tol = {tol:.3e})",
        iterations=miter, residual=nR)


def generate_cyclic_path(amp_pos, amp_neg, n_cycles, n_points):
    """
    Generate a cyclic scalar path: 0 -> amp_pos, then alternate amp_pos <-> amp_neg.

    Parameters:
    - amp_pos, amp_neg: peak values of each half cycle
    - n_cycles: number of full cycles
    - n_points: points per segment

    Returns a 1D numpy array.
    """
    segments = [np.linspace(0, amp_pos, n_points)]
    for _ in range(n_cycles):
        segments.append(np.linspace(amp_pos, amp_neg, n_points)[1:])
        segments.append(np.linspace(amp_neg, amp_pos, n_points)[1:])
    return np.concatenate(segments)


def uniaxial_strain_history(e11_history, nu=0.5):
    """
    Build Mandel strain vectors for a uniaxial path with lateral contraction -nu*e11.
    """
    e11_history = np.asarray(e11_history, dtype=float)
    history = np.zeros((len(e11_history), 6))
    history[:, 0] = e11_history
    history[:, 1] = -nu * e11_history
    history[:, 2] = -nu * e11_history
    return history


class DamageMaterialDriver:
    """
    Drives a single integration point through a strain history.

    The driver owns the point state (strain, stress, history, energy, work,
    time, temperature); the model itself is never mutated, so one model can
    serve many drivers.
    """
    def __init__(self, model, T=0.0, t=0.0):
        self.model = model
        self.T0 = T
        self.t0 = t
        self.reset_state()

    def reset_state(self):
        """Reset all state variables to initial conditions."""
        self.strain = np.zeros(6)
        self.stress = np.zeros(6)
        self.history = np.array(self.model.init_hist(), dtype=float)
        self.energy = 0.0
        self.work = 0.0
        self.T = self.T0
        self.t = self.t0
        self.tangent = None
        self.strain_history = []
        self.stress_history = []
        self.damage_history = []
        self.time_history = []

    def strain_step(self, e_np1, t_np1, T_np1=None):
        """
        Advance the point to strain e_np1 (Mandel vector or 3x3 tensor) at time t_np1.

        The state is only committed if the model update succeeds; any
        solver error propagates with the previous state intact.
        """
        e_np1 = np.asarray(e_np1, dtype=float)
        if e_np1.shape == (3, 3):
            e_np1 = tensor_to_mandel(e_np1)
        if T_np1 is None:
            T_np1 = self.T

        s_np1, h_np1, A_np1, u_np1, p_np1 = self.model.update(
            e_np1, self.strain, T_np1, self.T, t_np1, self.t,
            self.stress, self.history, self.energy, self.work)

        self.strain = e_np1
        self.stress = s_np1
        self.history = h_np1
        self.tangent = A_np1
        self.energy = u_np1
        self.work = p_np1
        self.T = T_np1
        self.t = t_np1

        self.strain_history.append(e_np1.copy())
        self.stress_history.append(s_np1.copy())
        self.damage_history.append(self.current_damage())
        self.time_history.append(t_np1)
        return s_np1

    def current_damage(self):
        """Damage value stored at the end of the history vector (0 for undamaged models)."""
        if hasattr(self.model, 'ndamage') and len(self.history) > 0:
            return float(self.history[-1])
        return 0.0

    def run_strain_controlled(self, strain_history, times=None, temperatures=None):
        """
        Strain-controlled simulation with proper state tracking.

        Parameters:
        - strain_history: sequence of Mandel vectors or 3x3 tensors
        - times: time at each point (defaults to 1, 2, 3, ...)
        - temperatures: temperature at each point (defaults to the current one)

        Returns (stresses, strains) as arrays of Mandel vectors.
        """
        n = len(strain_history)
        if times is None:
            times = self.t + np.arange(1, n + 1, dtype=float)
        if temperatures is None:
            temperatures = [self.T] * n

        stresses = []
        strains = []
        for strain, t, T in zip(strain_history, times, temperatures):
            stress = self.strain_step(strain, t, T)
            stresses.append(stress)
            strains.append(self.strain.copy())
        return np.array(stresses), np.array(strains)

    def plot_damage_history(self, fig=None):
        """
        Plot axial stress vs axial strain and damage vs time for the recorded history.

        Returns the matplotlib figure.
        """
        if fig is None:
            fig = plt.figure(figsize=(10, 4))
        ax1, ax2 = fig.subplots(1, 2)

        strains = np.array(self.strain_history)
        stresses = np.array(self.stress_history)
        if len(strains) > 0:
            ax1.plot(strains[:, 0], stresses[:, 0], linewidth=1.5, label="sigma11")
            ax1.plot(strains[:, 0], [von_mises(s) for s in stresses], "--", linewidth=1.2,
                     label="von Mises")
        ax1.set_xlabel("Strain e11 [-]")
        ax1.set_ylabel("Stress [MPa]")
        ax1.grid(True, linestyle=":", linewidth=0.5)
        ax1.legend()

        ax2.plot(self.time_history, self.damage_history, color="tab:red", linewidth=1.5)
        ax2.set_xlabel("Time")
        ax2.set_ylabel("Damage d [-]")
        ax2.grid(True, linestyle=":", linewidth=0.5)

        fig.tight_layout()
        return fig
