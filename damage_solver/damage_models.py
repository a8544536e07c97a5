#!/usr/bin/env python3
"""
Scalar damage models.
This module couples a scalar damage variable to an undamaged base model,
solves for the damage implicitly and assembles the consistent tangent.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass

import numpy as np

from .errors import ConfigurationError, NonPhysicalDamageError
from .material_models import (
    IsotropicLinearElasticModel,
    LinearIsotropicHardeningModel,
    NoIsotropicHardeningModel,
    SmallStrainElasticity,
    SmallStrainJ2Plasticity,
    SmallStrainModel,
    VoceIsotropicHardeningModel,
    dvon_mises,
    make_interpolate,
    parse_material_params,
    von_mises,
)
from .solver import solve

# --- Loading from parameter files ---

LAW_PARAMETERS = {
    'classical': ('A', 'xi', 'phi'),
    'powerlaw': ('A', 'a'),
    'exponential': ('W0', 'k0', 'af'),
}

MODEL_PARAMETERS = ('type', 'E', 'nu', 'base', 'sigma_y', 'R_inf', 'b', 'H', 'alpha',
                    'tol', 'miter', 'verbose', 'truesdell', 'laws', 'policy')


def create_damage_law(params):
    """
    Build a damage law from a parameter dictionary with a 'type' key.

    Args:
        params: e.g. {'type': 'powerlaw', 'A': 1e-4, 'a': 2.0}

    Returns:
        ScalarDamageLaw instance; the damaged model evaluating it supplies the elastic model
    """
    params = dict(params)
    law_type = params.pop('type', None)
    if law_type == 'combined':
        laws = params.pop('laws', None)
        policy = params.pop('policy', 'superposition')
        if params:
            raise ConfigurationError(f"Unknown parameters for combined damage: {sorted(params)}")
        if not isinstance(laws, (list, tuple)):
            raise ConfigurationError("Combined damage requires a list of laws under 'laws'.")
        return CombinedDamage([create_damage_law(p) for p in laws], policy=policy)
    if law_type not in LAW_PARAMETERS:
        raise ConfigurationError(f"Unknown damage law type: {law_type!r}")

    names = LAW_PARAMETERS[law_type]
    missing = [name for name in names if name not in params]
    if missing:
        raise ConfigurationError(f"Damage law '{law_type}' is missing parameters {missing}")
    unknown = sorted(set(params) - set(names))
    if unknown:
        raise ConfigurationError(f"Damage law '{law_type}' does not take parameters {unknown}")

    if law_type == 'classical':
        return ClassicalCreepDamage(params['A'], params['xi'], params['phi'])
    elif law_type == 'powerlaw':
        return PowerLawDamage(params['A'], params['a'])
    return ExponentialWorkDamage(params['W0'], params['k0'], params['af'])


def create_damage_model(params):
    """
    Build a configured ScalarDamagedModel from a parameter dictionary.

    The dictionary holds the elastic constants (E, nu), the base model
    ('elastic' or 'j2' with sigma_y and optionally R_inf/b or H), the solver
    settings (tol, miter, verbose) and the damage law: either the law
    parameters next to 'type', or 'type' = 'combined' with a list of law
    dictionaries under 'laws'.
    """
    params = dict(params)
    unknown = sorted(set(params) - set(MODEL_PARAMETERS)
                     - {name for names in LAW_PARAMETERS.values() for name in names})
    if unknown:
        raise ConfigurationError(f"Unknown model parameters: {unknown}")
    for required in ('type', 'E', 'nu'):
        if required not in params:
            raise ConfigurationError(f"Missing required parameter '{required}'")

    elastic = IsotropicLinearElasticModel(params.pop('E'), params.pop('nu'))
    alpha = params.pop('alpha', None)
    truesdell = params.pop('truesdell', True)

    base_type = params.pop('base', 'elastic')
    R_inf = params.pop('R_inf', None)
    b = params.pop('b', None)
    H = params.pop('H', None)
    sigma_y = params.pop('sigma_y', None)
    if base_type == 'elastic':
        if sigma_y is not None or R_inf is not None or b is not None or H is not None:
            raise ConfigurationError("Hardening parameters given for an elastic base model.")
        base = SmallStrainElasticity(elastic, alpha=alpha, truesdell=truesdell)
    elif base_type == 'j2':
        if sigma_y is None:
            raise ConfigurationError("A 'j2' base model requires 'sigma_y'.")
        if H is not None and (R_inf is not None or b is not None):
            raise ConfigurationError("Give either linear (H) or Voce (R_inf, b) hardening, not both.")
        if H is not None:
            isotropic_model = LinearIsotropicHardeningModel(H=H)
        elif R_inf is not None or b is not None:
            isotropic_model = VoceIsotropicHardeningModel(R_inf=R_inf or 0, b=b or 0)
        else:
            isotropic_model = NoIsotropicHardeningModel()
        base = SmallStrainJ2Plasticity(elastic, sigma_y, isotropic_model, alpha=alpha,
                                       truesdell=truesdell)
    else:
        raise ConfigurationError(f"Unknown base model type: {base_type!r}")

    solver_settings = {key: params.pop(key) for key in ('tol', 'miter', 'verbose') if key in params}
    law = create_damage_law(params)

    return ScalarDamagedModel(elastic, base, law, alpha=alpha, truesdell=truesdell, **solver_settings)


def load_damage_model(file_path):
    """
    Loads parameters from a 'key = value' file and creates the damage model.
    """
    return create_damage_model(parse_material_params(file_path))

# --- Inelastic strain increment ---

def inelastic_strain_increment(s_np1, s_n, e_np1, e_n, S):
    """
    Equivalent inelastic strain increment over the step.

    de = (e_np1 - e_n) - S (s_np1 - s_n),  dep = sqrt(2/3 de:de)

    Returns:
        tuple: (dep, de)
    """
    de = (np.asarray(e_np1, dtype=float) - np.asarray(e_n, dtype=float)
          - np.dot(S, np.asarray(s_np1, dtype=float) - np.asarray(s_n, dtype=float)))
    return np.sqrt(2.0 / 3.0 * np.dot(de, de)), de


def dinelastic_strain_increment(s_np1, s_n, e_np1, e_n, S):
    """
    Derivatives of dep with respect to e_np1 and s_np1.
    Both are zero when there is no inelastic strain increment.

    Returns:
        tuple: (ddep_de, ddep_ds)
    """
    dep, de = inelastic_strain_increment(s_np1, s_n, e_np1, e_n, S)
    if dep == 0.0:
        return np.zeros(6), np.zeros(6)
    ddep_de = 2.0 / 3.0 * de / dep
    return ddep_de, -np.dot(S.T, ddep_de)

# --- Trial State ---

@dataclass(frozen=True)
class SDTrialState:
    """
    Snapshot of one step used by every residual evaluation of the damage solve.

    s_n is the damaged stress at the start of the step, as stored by the
    caller; s_prime_n is the matching undamaged (effective) stress. elastic
    is the elastic model of the evaluating model when the state was built.
    """
    e_np1: np.ndarray
    e_n: np.ndarray
    T_np1: float
    T_n: float
    t_np1: float
    t_n: float
    s_n: np.ndarray
    h_n: np.ndarray
    d_n: float
    u_n: float
    p_n: float
    elastic: IsotropicLinearElasticModel = None

    @property
    def s_prime_n(self):
        return self.s_n / (1.0 - self.d_n)

# --- Damage Laws ---

class ScalarDamageLaw:
    """
    Abstract base class for scalar damage evolution laws.

    Every method takes (d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n),
    where the stresses are the damaged stresses, and returns the damage
    increment over the step or its partial derivative. Laws are stateless
    apart from their parameters.

    The optional elastic argument is the elastic model of the damaged model
    doing the evaluation. It takes precedence over any model bound to the
    law, so one law object can be shared by models with different elasticity.
    """
    def init_damage(self):
        return 0.0

    def set_elastic_model(self, elastic):
        pass

    def damage(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        raise NotImplementedError

    def ddamage_dd(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        raise NotImplementedError

    def ddamage_de(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        raise NotImplementedError

    def ddamage_ds(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        raise NotImplementedError


class ClassicalCreepDamage(ScalarDamageLaw):
    """
    Classical Hayhurst-Leckie-Rabotnov-Kachanov creep damage.

    dd = (se / A)^xi * (1 - d_np1)^(-phi) * dt

    with se the von Mises stress and A, xi, phi functions of temperature.
    """
    def __init__(self, A, xi, phi):
        self.A = make_interpolate(A)
        self.xi = make_interpolate(xi)
        self.phi = make_interpolate(phi)

    def damage(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        se = von_mises(s_np1)
        dt = t_np1 - t_n
        return (np.power(se / self.A(T_np1), self.xi(T_np1))
                * np.power(1.0 - d_np1, -self.phi(T_np1)) * dt)

    def ddamage_dd(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        se = von_mises(s_np1)
        dt = t_np1 - t_n
        phi = self.phi(T_np1)
        return (np.power(se / self.A(T_np1), self.xi(T_np1))
                * phi * np.power(1.0 - d_np1, -(phi + 1.0)) * dt)

    def ddamage_de(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        return np.zeros(6)

    def ddamage_ds(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        se = von_mises(s_np1)
        if se == 0.0:
            return np.zeros(6)
        dt = t_np1 - t_n
        A = self.A(T_np1)
        xi = self.xi(T_np1)
        return (xi * np.power(se / A, xi - 1.0) / A
                * np.power(1.0 - d_np1, -self.phi(T_np1)) * dt * dvon_mises(s_np1))


class StrainDrivenDamage(ScalarDamageLaw):
    """
    Damage proportional to the equivalent inelastic strain increment, dd = f * dep.

    Concrete laws supply the rate function f(s, d, T) and its derivatives
    df_ds and df_dd; dep comes from inelastic_strain_increment using the
    compliance of the elastic model passed in, or of the bound one when
    the law is evaluated on its own.
    """
    def __init__(self, elastic=None):
        self.elastic = elastic

    def set_elastic_model(self, elastic):
        self.elastic = elastic

    def compliance(self, T, elastic=None):
        if elastic is None:
            elastic = self.elastic
        if elastic is None:
            raise ConfigurationError(f"{type(self).__name__} has no elastic model bound")
        return elastic.S(T)

    def f(self, s_np1, d_np1, T_np1):
        raise NotImplementedError

    def df_ds(self, s_np1, d_np1, T_np1):
        raise NotImplementedError

    def df_dd(self, s_np1, d_np1, T_np1):
        raise NotImplementedError

    def damage(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        dep, _ = inelastic_strain_increment(s_np1, s_n, e_np1, e_n, self.compliance(T_np1, elastic))
        return self.f(s_np1, d_np1, T_np1) * dep

    def ddamage_dd(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        dep, _ = inelastic_strain_increment(s_np1, s_n, e_np1, e_n, self.compliance(T_np1, elastic))
        return self.df_dd(s_np1, d_np1, T_np1) * dep

    def ddamage_de(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        ddep_de, _ = dinelastic_strain_increment(s_np1, s_n, e_np1, e_n, self.compliance(T_np1, elastic))
        return self.f(s_np1, d_np1, T_np1) * ddep_de

    def ddamage_ds(self, d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, elastic=None):
        S = self.compliance(T_np1, elastic)
        dep, _ = inelastic_strain_increment(s_np1, s_n, e_np1, e_n, S)
        _, ddep_ds = dinelastic_strain_increment(s_np1, s_n, e_np1, e_n, S)
        return self.df_ds(s_np1, d_np1, T_np1) * dep + self.f(s_np1, d_np1, T_np1) * ddep_ds


class PowerLawDamage(StrainDrivenDamage):
    """
    Power law in the von Mises stress.

    dd = f * dep,  f = A * se^a
    """
    def __init__(self, A, a, elastic=None):
        super().__init__(elastic)
        self.A = make_interpolate(A)
        self.a = make_interpolate(a)

    def f(self, s_np1, d_np1, T_np1):
        return self.A(T_np1) * np.power(von_mises(s_np1), self.a(T_np1))

    def df_ds(self, s_np1, d_np1, T_np1):
        se = von_mises(s_np1)
        if se == 0.0:
            return np.zeros(6)
        a = self.a(T_np1)
        return self.A(T_np1) * a * np.power(se, a - 1.0) * dvon_mises(s_np1)

    def df_dd(self, s_np1, d_np1, T_np1):
        return 0.0


class ExponentialWorkDamage(StrainDrivenDamage):
    """
    Work based damage with an exponential dependence on damage.

    dd = f * dep,  f = (d + k0)^af / W0 * se
    """
    def __init__(self, W0, k0, af, elastic=None):
        super().__init__(elastic)
        self.W0 = make_interpolate(W0)
        self.k0 = make_interpolate(k0)
        self.af = make_interpolate(af)

    def f(self, s_np1, d_np1, T_np1):
        return (np.power(d_np1 + self.k0(T_np1), self.af(T_np1)) / self.W0(T_np1)
                * von_mises(s_np1))

    def df_ds(self, s_np1, d_np1, T_np1):
        return (np.power(d_np1 + self.k0(T_np1), self.af(T_np1)) / self.W0(T_np1)
                * dvon_mises(s_np1))

    def df_dd(self, s_np1, d_np1, T_np1):
        af = self.af(T_np1)
        return (af * np.power(d_np1 + self.k0(T_np1), af - 1.0) / self.W0(T_np1)
                * von_mises(s_np1))


class CombinedDamage(ScalarDamageLaw):
    """
    Several damage laws evaluated at the same point.

    policy='superposition' adds the increments and the partial derivatives
    of all laws. policy='maximum' uses the law with the largest increment at
    the evaluation point, together with its partial derivatives.
    """
    POLICIES = ('superposition', 'maximum')

    def __init__(self, laws, policy='superposition'):
        laws = list(laws)
        if len(laws) == 0:
            raise ConfigurationError("A combined damage law needs at least one law.")
        for law in laws:
            if not isinstance(law, ScalarDamageLaw):
                raise ConfigurationError(f"Expected a scalar damage law, got {type(law).__name__}")
        if policy not in self.POLICIES:
            raise ConfigurationError(f"Unknown combination policy {policy!r}, expected one of {self.POLICIES}")
        self.laws = laws
        self.policy = policy

    def set_elastic_model(self, elastic):
        for law in self.laws:
            law.set_elastic_model(elastic)

    def _active(self, args, elastic):
        if self.policy == 'superposition':
            return self.laws
        increments = [law.damage(*args, elastic=elastic) for law in self.laws]
        return [self.laws[int(np.argmax(increments))]]

    def damage(self, *args, elastic=None):
        return sum(law.damage(*args, elastic=elastic) for law in self._active(args, elastic))

    def ddamage_dd(self, *args, elastic=None):
        return sum(law.ddamage_dd(*args, elastic=elastic) for law in self._active(args, elastic))

    def ddamage_de(self, *args, elastic=None):
        return np.sum([law.ddamage_de(*args, elastic=elastic)
                       for law in self._active(args, elastic)], axis=0)

    def ddamage_ds(self, *args, elastic=None):
        return np.sum([law.ddamage_ds(*args, elastic=elastic)
                       for law in self._active(args, elastic)], axis=0)

# --- Damaged Models ---

class DamagedModel(SmallStrainModel):
    """
    Abstract base class for a base model degraded by damage.

    History layout: [base model history] + [damage variables].

    Any number of updates may run at once on a shared instance. Rebinding
    the elastic model waits until no update is running and holds new ones
    back until it is done.
    """
    def __init__(self, elastic, base, alpha=None, truesdell=True):
        super().__init__(elastic, alpha=alpha, truesdell=truesdell)
        if not isinstance(base, SmallStrainModel):
            raise ConfigurationError(f"Expected a base constitutive model, got {type(base).__name__}")
        self.base = base
        self._config = threading.Condition()
        self._running = 0

    def nhist(self):
        return self.base.nhist() + self.ndamage()

    def init_hist(self):
        return np.concatenate((np.asarray(self.base.init_hist(), dtype=float),
                               np.asarray(self.init_damage(), dtype=float)))

    def ndamage(self):
        raise NotImplementedError

    def init_damage(self):
        raise NotImplementedError

    @contextmanager
    def _updating(self):
        with self._config:
            self._running += 1
        try:
            yield
        finally:
            with self._config:
                self._running -= 1
                if self._running == 0:
                    self._config.notify_all()

    def set_elastic_model(self, elastic):
        """
        Rebind the elastic model here and in the wrapped base model.
        """
        with self._config:
            self._config.wait_for(lambda: self._running == 0)
            super().set_elastic_model(elastic)
            self.base.set_elastic_model(elastic)


class ScalarDamagedModel(DamagedModel):
    """
    Base model degraded by a single scalar damage variable d.

    The damaged stress is s = (1 - d) s', where s' is the base model stress
    for the same strain step. d_np1 solves

        R(d) = d - d_n - dd(d, s(d)) = 0

    by Newton's method, seeded with d_n. The law is evaluated with this
    model's elastic model and is never modified, so it may be shared.
    """
    def __init__(self, elastic, base, law, alpha=None, tol=1e-8, miter=50,
                 verbose=False, truesdell=True):
        super().__init__(elastic, base, alpha=alpha, truesdell=truesdell)
        if not isinstance(law, ScalarDamageLaw):
            raise ConfigurationError(f"Expected a scalar damage law, got {type(law).__name__}")
        if isinstance(tol, bool) or not isinstance(tol, (int, float)) or not tol > 0:
            raise ConfigurationError(f"Solver tolerance must be a positive number, got {tol!r}")
        if isinstance(miter, bool) or not isinstance(miter, (int, np.integer)) or miter < 1:
            raise ConfigurationError(f"Maximum iterations must be a positive integer, got {miter!r}")
        self.law = law
        self.tol = float(tol)
        self.miter = int(miter)
        self.verbose = bool(verbose)

    def ndamage(self):
        return 1

    def init_damage(self):
        return np.array([self.law.init_damage()])

    def nparams(self):
        return 1

    def make_trial_state(self, e_np1, e_n, T_np1, T_n, t_np1, t_n, s_n, h_n, u_n, p_n):
        """
        Setup a trial state from the step data.
        """
        h_n = np.array(h_n, dtype=float)
        if len(h_n) != self.nhist():
            raise ValueError(f"Expected a history vector of length {self.nhist()}, got {len(h_n)}")
        arrays = [np.array(v, dtype=float) for v in (e_np1, e_n, s_n, h_n[:self.base.nhist()])]
        for v in arrays:
            v.flags.writeable = False
        e_np1, e_n, s_n, h_base = arrays
        return SDTrialState(e_np1=e_np1, e_n=e_n, T_np1=T_np1, T_n=T_n, t_np1=t_np1, t_n=t_n,
                            s_n=s_n, h_n=h_base, d_n=float(h_n[-1]), u_n=u_n, p_n=p_n,
                            elastic=self.elastic)

    def init_x(self, ts):
        return np.array([ts.d_n])

    def _base_update(self, ts):
        return self.base.update(ts.e_np1, ts.e_n, ts.T_np1, ts.T_n, ts.t_np1, ts.t_n,
                                ts.s_prime_n, ts.h_n, ts.u_n, ts.p_n)

    def _law_args(self, d_np1, s_np1, ts):
        return (d_np1, ts.d_n, ts.e_np1, ts.e_n, s_np1, ts.s_n,
                ts.T_np1, ts.T_n, ts.t_np1, ts.t_n)

    def RJ(self, x, ts):
        """
        Residual and Jacobian of the damage update at the candidate damage x[0].

        ds/dd = -s' at fixed strain, so the stress dependence of the damage
        increment enters the Jacobian as + ddamage_ds : s'.
        """
        d_np1 = x[0]
        s_prime = self._base_update(ts)[0]
        s_np1 = (1.0 - d_np1) * s_prime
        args = self._law_args(d_np1, s_np1, ts)

        R = d_np1 - ts.d_n - self.law.damage(*args, elastic=ts.elastic)
        J = (1.0 - self.law.ddamage_dd(*args, elastic=ts.elastic)
             + np.dot(self.law.ddamage_ds(*args, elastic=ts.elastic), s_prime))
        return np.array([R]), np.array([[J]])

    def tangent_(self, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n, d_np1, d_n, A_prime,
                 elastic=None):
        """
        Consistent tangent of the damaged stress.

        Linearizing R(d, e) = 0 gives the total damage sensitivity
            dd/de = ((1 - d) A'^T ddamage_ds + ddamage_de) / (dR/dd)
        and then ds/de = (1 - d) A' - s' (x) dd/de.
        """
        if elastic is None:
            elastic = self.elastic
        args = (d_np1, d_n, e_np1, e_n, s_np1, s_n, T_np1, T_n, t_np1, t_n)
        s_prime = s_np1 / (1.0 - d_np1)
        dw_ds = self.law.ddamage_ds(*args, elastic=elastic)
        dw_de = self.law.ddamage_de(*args, elastic=elastic)
        dw_dd = self.law.ddamage_dd(*args, elastic=elastic)

        k = 1.0 - dw_dd + np.dot(dw_ds, s_prime)
        dd_de = ((1.0 - d_np1) * np.dot(A_prime.T, dw_ds) + dw_de) / k
        return (1.0 - d_np1) * A_prime - np.outer(s_prime, dd_de)

    def update(self, e_np1, e_n, T_np1, T_n, t_np1, t_n, s_n, h_n, u_n, p_n):
        """
        Damaged stress update over one step.

        Returns:
            tuple: (s_np1, h_np1, A_np1, u_np1, p_np1)

        Raises NonConvergenceError if the damage (or base) solve fails and
        NonPhysicalDamageError if the converged damage leaves [0, 1) or the
        stress is not finite.
        """
        with self._updating():
            ts = self.make_trial_state(e_np1, e_n, T_np1, T_n, t_np1, t_n, s_n, h_n, u_n, p_n)
            x, _ = solve(self, ts, self.tol, self.miter, verbose=self.verbose)
            d_np1 = float(x[0])
            if not (np.isfinite(d_np1) and 0.0 <= d_np1 < 1.0):
                raise NonPhysicalDamageError(f"Damage {d_np1} is outside [0, 1)", damage=d_np1)

            s_prime, h_base, A_prime, _, _ = self._base_update(ts)
            s_np1 = (1.0 - d_np1) * s_prime
            if not np.all(np.isfinite(s_np1)):
                raise NonPhysicalDamageError(f"Non-finite damaged stress at damage {d_np1}", damage=d_np1)

            A_np1 = self.tangent_(ts.e_np1, ts.e_n, s_np1, ts.s_n, T_np1, T_n, t_np1, t_n,
                                  d_np1, ts.d_n, A_prime, elastic=ts.elastic)
            h_np1 = np.concatenate((np.asarray(h_base, dtype=float), [d_np1]))

            # Elastic strains of the damaged material, S s / (1 - d)
            ee_np1 = np.dot(ts.elastic.S(T_np1), s_prime)
            ee_n = np.dot(ts.elastic.S(T_n), ts.s_prime_n)
            u_np1, p_np1 = self.energy_and_work(ts.e_np1, ts.e_n, s_np1, ts.s_n,
                                                ee_np1, ee_n, u_n, p_n)

        return s_np1, h_np1, A_np1, u_np1, p_np1
