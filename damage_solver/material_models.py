#!/usr/bin/env python3
"""
Undamaged material models used underneath the damage models.
This module contains the tensor utilities, temperature interpolation,
linear elasticity and the small strain base constitutive models.
"""

import ast
from pathlib import Path

import numpy as np
from scipy.optimize import newton

from .errors import ConfigurationError, NonConvergenceError

# --- Utility Functions ---

def parse_material_params(file_path):
    """
    Parses a single material parameter file with 'key = value' format.
    Cross-platform compatible with explicit UTF-8 encoding.
    """
    params = {}
    file_path = Path(file_path)

    with open(file_path, 'r', encoding='utf-8', newline=None) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, value = line.split('=', 1)
            key = key.strip()
            value = value.strip()
            try:
                # Use ast.literal_eval for safe evaluation of Python literals
                params[key] = ast.literal_eval(value)
            except (ValueError, SyntaxError):
                params[key] = value
    return params

# --- Mandel Tensor Utilities ---

SQRT2 = np.sqrt(2.0)


def tensor_to_mandel(tensor):
    """Converts a 3x3 symmetric tensor to a 6x1 Mandel notation vector."""
    return np.array([tensor[0, 0], tensor[1, 1], tensor[2, 2],
                     SQRT2 * tensor[1, 2], SQRT2 * tensor[0, 2], SQRT2 * tensor[0, 1]])


def mandel_to_tensor(mandel):
    """Converts a 6x1 Mandel notation vector to a 3x3 symmetric tensor."""
    tensor = np.zeros((3, 3))
    tensor[0, 0], tensor[1, 1], tensor[2, 2] = mandel[0], mandel[1], mandel[2]
    tensor[1, 2] = tensor[2, 1] = mandel[3] / SQRT2
    tensor[0, 2] = tensor[2, 0] = mandel[4] / SQRT2
    tensor[0, 1] = tensor[1, 0] = mandel[5] / SQRT2
    return tensor


def identity_mandel():
    """Second order identity in Mandel notation."""
    return np.array([1.0, 1.0, 1.0, 0.0, 0.0, 0.0])


def deviatoric_projector():
    """Fourth order deviatoric projector as a 6x6 Mandel matrix."""
    m = identity_mandel()
    return np.identity(6) - np.outer(m, m) / 3.0


def deviatoric(s):
    """Computes the deviatoric part of a Mandel vector."""
    s = np.asarray(s, dtype=float)
    return s - np.sum(s[:3]) / 3.0 * identity_mandel()


def von_mises(s):
    """von Mises equivalent stress, sqrt(3/2 s':s')."""
    sdev = deviatoric(s)
    return np.sqrt(1.5 * np.dot(sdev, sdev))


def dvon_mises(s):
    """
    Gradient of the von Mises stress with respect to the stress.
    Defined as zero at a hydrostatic (or zero) stress state.
    """
    sdev = deviatoric(s)
    se = np.sqrt(1.5 * np.dot(sdev, sdev))
    if se == 0.0:
        return np.zeros(6)
    return 1.5 * sdev / se

# --- Temperature Interpolation ---

class Interpolate:
    """
    Abstract base class for a scalar material parameter as a function of temperature.
    """
    def evaluate(self, T):
        raise NotImplementedError

    def derivative(self, T):
        raise NotImplementedError

    def __call__(self, T):
        return self.evaluate(T)


class ConstantInterpolate(Interpolate):
    """A temperature independent parameter."""
    def __init__(self, value):
        self.value = float(value)

    def evaluate(self, T):
        return self.value

    def derivative(self, T):
        return 0.0


class PiecewiseLinearInterpolate(Interpolate):
    """
    Piecewise linear interpolation between (point, value) pairs.
    Values outside the range are held constant at the end values.
    """
    def __init__(self, points, values):
        self.points = np.array(points, dtype=float)
        self.values = np.array(values, dtype=float)
        if self.points.ndim != 1 or len(self.points) < 2:
            raise ConfigurationError("Piecewise linear interpolation requires at least two points.")
        if len(self.points) != len(self.values):
            raise ConfigurationError(
                f"Got {len(self.points)} points but {len(self.values)} values for piecewise linear interpolation.")
        if np.any(np.diff(self.points) <= 0):
            raise ConfigurationError("Interpolation points must be strictly increasing.")

    def evaluate(self, T):
        return float(np.interp(T, self.points, self.values))

    def derivative(self, T):
        if T < self.points[0] or T > self.points[-1]:
            return 0.0
        i = min(np.searchsorted(self.points, T, side='right') - 1, len(self.points) - 2)
        return float((self.values[i + 1] - self.values[i]) / (self.points[i + 1] - self.points[i]))


class PolynomialInterpolate(Interpolate):
    """Polynomial in temperature, coefficients in numpy.polyval order (highest power first)."""
    def __init__(self, coefs):
        self.coefs = np.array(coefs, dtype=float)
        if self.coefs.ndim != 1 or len(self.coefs) == 0:
            raise ConfigurationError("Polynomial interpolation requires at least one coefficient.")

    def evaluate(self, T):
        return float(np.polyval(self.coefs, T))

    def derivative(self, T):
        return float(np.polyval(np.polyder(self.coefs), T)) if len(self.coefs) > 1 else 0.0


def make_interpolate(value):
    """
    Normalize a parameter into an Interpolate.

    Accepts an Interpolate (returned unchanged), a plain number (constant),
    a dict with 'points' and 'values' (piecewise linear) or a dict with
    'coefs' (polynomial).
    """
    if isinstance(value, Interpolate):
        return value
    if isinstance(value, bool):
        raise ConfigurationError(f"Cannot interpret boolean {value!r} as a material parameter.")
    if isinstance(value, (int, float, np.integer, np.floating)):
        return ConstantInterpolate(value)
    if isinstance(value, dict):
        if 'points' in value and 'values' in value:
            return PiecewiseLinearInterpolate(value['points'], value['values'])
        if 'coefs' in value:
            return PolynomialInterpolate(value['coefs'])
    raise ConfigurationError(f"Cannot interpret {value!r} as a material parameter.")

# --- Elasticity ---

class IsotropicLinearElasticModel:
    """
    Isotropic linear elasticity with temperature dependent E and nu.
    Stiffness and compliance are returned as 6x6 Mandel matrices.
    """
    def __init__(self, E, nu):
        self._E = make_interpolate(E)
        self._nu = make_interpolate(nu)

    def E(self, T):
        E = self._E(T)
        if E <= 0:
            raise ConfigurationError(f"Young's modulus must be positive, got {E} at T = {T}")
        return E

    def nu(self, T):
        nu = self._nu(T)
        if not -1.0 < nu < 0.5:
            raise ConfigurationError(f"Poisson's ratio must lie in (-1, 0.5), got {nu} at T = {T}")
        return nu

    def G(self, T):
        return self.E(T) / (2 * (1 + self.nu(T)))

    def K(self, T):
        return self.E(T) / (3 * (1 - 2 * self.nu(T)))

    def C(self, T):
        """Elastic stiffness, C = 3K J + 2G K_dev."""
        m = identity_mandel()
        return self.K(T) * np.outer(m, m) + 2 * self.G(T) * deviatoric_projector()

    def S(self, T):
        """Elastic compliance, the exact inverse of C."""
        m = identity_mandel()
        return np.outer(m, m) / (9 * self.K(T)) + deviatoric_projector() / (2 * self.G(T))

# --- Isotropic Hardening Models ---

class BaseIsotropicHardeningModel:
    """
    Abstract base class for isotropic hardening models R(p).
    """
    def __init__(self, **params):
        self.params = params

    def hardening(self, p):
        """
        Isotropic hardening stress at accumulated plastic strain p.
        """
        raise NotImplementedError

    def compute_hardening_modulus(self, p):
        """
        Compute the isotropic hardening modulus h_iso = dR/dp.
        """
        raise NotImplementedError


class VoceIsotropicHardeningModel(BaseIsotropicHardeningModel):
    """
    Voce isotropic hardening model implementation.
    Closed form of the evolution law dR = b * (R_inf - R) * dp with R(0) = 0:
    R(p) = R_inf * (1 - exp(-b * p))
    """
    def __init__(self, R_inf=0, b=0):
        super().__init__(R_inf=R_inf, b=b)
        self.R_inf = R_inf  # Saturation value for isotropic hardening
        self.b = b          # Rate parameter for isotropic hardening

    def hardening(self, p):
        return self.R_inf * (1.0 - np.exp(-self.b * p))

    def compute_hardening_modulus(self, p):
        if self.b == 0:
            return 0.0
        return self.b * self.R_inf * np.exp(-self.b * p)


class LinearIsotropicHardeningModel(BaseIsotropicHardeningModel):
    """Linear isotropic hardening, R = H * p."""
    def __init__(self, H=0):
        super().__init__(H=H)
        self.H = H

    def hardening(self, p):
        return self.H * p

    def compute_hardening_modulus(self, p):
        return self.H


class NoIsotropicHardeningModel(BaseIsotropicHardeningModel):
    """
    No isotropic hardening model (perfect plasticity).
    """
    def __init__(self):
        super().__init__()

    def hardening(self, p):
        return 0.0

    def compute_hardening_modulus(self, p):
        return 0.0

# --- Base Material Model ---

class SmallStrainModel:
    """
    Abstract base class for small strain constitutive models.

    Every model exposes the same step update, so a damaged model can wrap
    any of these (or another damaged model) as its base response:

        update(e_np1, e_n, T_np1, T_n, t_np1, t_n, s_n, h_n, u_n, p_n)
            -> (s_np1, h_np1, A_np1, u_np1, p_np1)

    Strains and stresses are Mandel vectors, A_np1 the 6x6 algorithmic tangent,
    u the accumulated strain energy and p the accumulated plastic work.
    """
    def __init__(self, elastic, alpha=None, truesdell=True):
        if not isinstance(elastic, IsotropicLinearElasticModel):
            raise ConfigurationError(f"Expected an elastic model, got {type(elastic).__name__}")
        self.elastic = elastic
        # Thermal expansion and the objective rate flag are applied by the caller
        self.alpha = make_interpolate(alpha) if alpha is not None else ConstantInterpolate(0.0)
        self.truesdell = bool(truesdell)

    def nhist(self):
        raise NotImplementedError

    def init_hist(self):
        raise NotImplementedError

    def update(self, e_np1, e_n, T_np1, T_n, t_np1, t_n, s_n, h_n, u_n, p_n):
        raise NotImplementedError

    def set_elastic_model(self, elastic):
        """
        Rebind the elastic model, used when an outer model shares its elasticity.
        """
        if not isinstance(elastic, IsotropicLinearElasticModel):
            raise ConfigurationError(f"Expected an elastic model, got {type(elastic).__name__}")
        self.elastic = elastic

    def energy_and_work(self, e_np1, e_n, s_np1, s_n, ee_np1, ee_n, u_n, p_n):
        """
        Trapezoidal strain energy and plastic work increments.

        Args:
            e_np1, e_n: total strain at the end and start of the step
            s_np1, s_n: stress at the end and start of the step
            ee_np1, ee_n: elastic strain at the end and start of the step
            u_n, p_n: energy and work at the start of the step

        Returns:
            tuple: (u_np1, p_np1)
        """
        s_mid = 0.5 * (s_np1 + s_n)
        de = e_np1 - e_n
        u_np1 = u_n + np.dot(s_mid, de)
        p_np1 = p_n + np.dot(s_mid, de - (ee_np1 - ee_n))
        return u_np1, p_np1


class SmallStrainElasticity(SmallStrainModel):
    """
    Purely elastic base model without history.
    """
    def nhist(self):
        return 0

    def init_hist(self):
        return np.zeros(0)

    def update(self, e_np1, e_n, T_np1, T_n, t_np1, t_n, s_n, h_n, u_n, p_n):
        e_np1 = np.asarray(e_np1, dtype=float)
        e_n = np.asarray(e_n, dtype=float)
        C = self.elastic.C(T_np1)
        s_np1 = np.dot(C, e_np1)
        # All strain is elastic, no plastic work
        u_np1, p_np1 = self.energy_and_work(e_np1, e_n, s_np1, np.asarray(s_n, dtype=float),
                                            e_np1, e_n, u_n, p_n)
        return s_np1, np.zeros(0), C, u_np1, p_np1


class SmallStrainJ2Plasticity(SmallStrainModel):
    """
    Rate independent J2 plasticity with isotropic hardening.

    History layout: [plastic strain (6 Mandel components), accumulated plastic strain p].
    The step is integrated with the radial return algorithm and the returned
    tangent is the algorithmic (consistent) tangent.
    """
    def __init__(self, elastic, sigma_y, isotropic_model=None, alpha=None, truesdell=True,
                 tol=1e-12, miter=50):
        super().__init__(elastic, alpha=alpha, truesdell=truesdell)
        self.sigma_y = make_interpolate(sigma_y)
        self.isotropic_model = isotropic_model if isotropic_model is not None else NoIsotropicHardeningModel()
        if not isinstance(self.isotropic_model, BaseIsotropicHardeningModel):
            raise ConfigurationError(
                f"Expected an isotropic hardening model, got {type(self.isotropic_model).__name__}")
        if tol <= 0:
            raise ConfigurationError(f"Return mapping tolerance must be positive, got {tol}")
        self.tol = tol
        self.miter = int(miter)

    def nhist(self):
        return 7

    def init_hist(self):
        return np.zeros(7)

    def yield_function(self, s, p, T):
        """
        Evaluate the von Mises yield function.
        """
        return von_mises(s) - (self.sigma_y(T) + self.isotropic_model.hardening(p))

    def update(self, e_np1, e_n, T_np1, T_n, t_np1, t_n, s_n, h_n, u_n, p_n):
        e_np1 = np.asarray(e_np1, dtype=float)
        h_n = np.asarray(h_n, dtype=float)
        ep_n = h_n[:6]
        p_old = h_n[6]

        G = self.elastic.G(T_np1)
        K = self.elastic.K(T_np1)
        C = self.elastic.C(T_np1)

        trial_stress = np.dot(C, e_np1 - ep_n)
        f_trial = self.yield_function(trial_stress, p_old, T_np1)

        if f_trial <= 0:
            # Elastic step
            s_np1 = trial_stress
            h_np1 = h_n.copy()
            A_np1 = C
        else:
            s_trial_dev = deviatoric(trial_stress)
            q_trial = von_mises(trial_stress)
            flow_direction = s_trial_dev / np.linalg.norm(s_trial_dev)
            sigma_y = self.sigma_y(T_np1)
            iso = self.isotropic_model

            def residual(dp):
                return q_trial - 3 * G * dp - sigma_y - iso.hardening(p_old + dp)

            def dresidual(dp):
                return -3 * G - iso.compute_hardening_modulus(p_old + dp)

            h_plastic = iso.compute_hardening_modulus(p_old)
            dp_init = f_trial / (3 * G + h_plastic)
            try:
                dp = newton(residual, dp_init, fprime=dresidual, tol=self.tol, maxiter=self.miter)
            except RuntimeError as err:
                raise NonConvergenceError(f"J2 return mapping failed: {err}",
                                          iterations=self.miter) from err
            if dp < 0:
                raise NonConvergenceError(f"J2 return mapping produced a negative multiplier {dp}")

            d_epsilon_p = np.sqrt(3. / 2.) * dp * flow_direction
            s_np1 = trial_stress - 2 * G * d_epsilon_p
            h_np1 = np.concatenate((ep_n + d_epsilon_p, [p_old + dp]))

            # Consistent tangent for radial return
            H = iso.compute_hardening_modulus(p_old + dp)
            theta = 1.0 - 3 * G * dp / q_trial
            theta_bar = 1.0 / (1.0 + H / (3 * G)) - (1.0 - theta)
            m = identity_mandel()
            A_np1 = (K * np.outer(m, m) + 2 * G * theta * deviatoric_projector()
                     - 2 * G * theta_bar * np.outer(flow_direction, flow_direction))

        S = self.elastic.S(T_np1)
        ee_np1 = np.dot(S, s_np1)
        ee_n = np.dot(self.elastic.S(T_n), s_n)
        u_np1, p_np1 = self.energy_and_work(e_np1, np.asarray(e_n, dtype=float), s_np1,
                                            np.asarray(s_n, dtype=float), ee_np1, ee_n, u_n, p_n)
        return s_np1, h_np1, A_np1, u_np1, p_np1
