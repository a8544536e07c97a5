#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Checks of the scalar damage laws in isolation.

- analytic partial derivatives against central differences,
- non-negative increments and no damage without loading,
- the closed form power law increment,
- combinations of laws.
"""

import numpy as np
import pytest
from conftest import finite_difference

from damage_solver.damage_models import (
    ClassicalCreepDamage,
    CombinedDamage,
    ExponentialWorkDamage,
    PowerLawDamage,
    inelastic_strain_increment,
)
from damage_solver.errors import ConfigurationError
from damage_solver.material_models import PiecewiseLinearInterpolate, von_mises


def make_laws(elastic):
    return {
        'classical': ClassicalCreepDamage(
            A=PiecewiseLinearInterpolate([500.0, 600.0], [320.0, 280.0]), xi=4.0, phi=3.0),
        'powerlaw': PowerLawDamage(A=1e-4, a=2.0, elastic=elastic),
        'exponential': ExponentialWorkDamage(W0=10.0, k0=1e-3, af=1.5, elastic=elastic),
        'combined': CombinedDamage([
            ClassicalCreepDamage(A=300.0, xi=4.0, phi=3.0),
            PowerLawDamage(A=1e-4, a=2.0, elastic=elastic),
            ExponentialWorkDamage(W0=10.0, k0=1e-3, af=1.5, elastic=elastic),
        ]),
    }


def sample_step(seed):
    """Random step data within the valid range; None selects the shared fixture."""
    rng = np.random.default_rng(seed)
    d_n = rng.uniform(0.0, 0.4)
    return {
        'd_np1': d_n + rng.uniform(0.01, 0.3),
        'd_n': d_n,
        'e_np1': rng.normal(scale=1e-3, size=6),
        'e_n': rng.normal(scale=1e-3, size=6),
        's_np1': rng.normal(scale=150.0, size=6),
        's_n': rng.normal(scale=150.0, size=6),
        'T_np1': rng.uniform(500.0, 600.0),
        'T_n': rng.uniform(500.0, 600.0),
        't_np1': rng.uniform(1.5, 3.0),
        't_n': 1.0,
    }


def call(law, method, data, **override):
    args = dict(data, **override)
    return getattr(law, method)(args['d_np1'], args['d_n'], args['e_np1'], args['e_n'],
                                args['s_np1'], args['s_n'], args['T_np1'], args['T_n'],
                                args['t_np1'], args['t_n'])


@pytest.mark.parametrize("seed", [None, 11, 22, 33])
@pytest.mark.parametrize("name", ['classical', 'powerlaw', 'exponential', 'combined'])
def test_ddamage_dd_matches_finite_difference(name, seed, elastic, step_data):
    law = make_laws(elastic)[name]
    data = step_data if seed is None else sample_step(seed)
    numeric = finite_difference(lambda d: call(law, 'damage', data, d_np1=d),
                                data['d_np1'], 1e-6)
    analytic = call(law, 'ddamage_dd', data)
    assert analytic == pytest.approx(numeric, rel=1e-6, abs=1e-12)


@pytest.mark.parametrize("seed", [None, 11, 22, 33])
@pytest.mark.parametrize("name", ['classical', 'powerlaw', 'exponential', 'combined'])
def test_ddamage_de_matches_finite_difference(name, seed, elastic, step_data):
    law = make_laws(elastic)[name]
    data = step_data if seed is None else sample_step(seed)
    numeric = finite_difference(lambda e: call(law, 'damage', data, e_np1=e),
                                data['e_np1'], 1e-9)
    analytic = call(law, 'ddamage_de', data)
    scale = max(np.max(np.abs(numeric)), 1.0)
    np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-7 * scale)


@pytest.mark.parametrize("seed", [None, 11, 22, 33])
@pytest.mark.parametrize("name", ['classical', 'powerlaw', 'exponential', 'combined'])
def test_ddamage_ds_matches_finite_difference(name, seed, elastic, step_data):
    law = make_laws(elastic)[name]
    data = step_data if seed is None else sample_step(seed)
    numeric = finite_difference(lambda s: call(law, 'damage', data, s_np1=s),
                                data['s_np1'], 1e-4)
    analytic = call(law, 'ddamage_ds', data)
    scale = max(np.max(np.abs(numeric)), 1e-12)
    np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-7 * scale)


def test_classical_creep_has_no_strain_dependence(elastic, step_data):
    law = make_laws(elastic)['classical']
    np.testing.assert_array_equal(call(law, 'ddamage_de', step_data), np.zeros(6))


@pytest.mark.parametrize("name", ['classical', 'powerlaw', 'exponential', 'combined'])
def test_damage_increment_is_non_negative(name, elastic):
    law = make_laws(elastic)[name]
    rng = np.random.default_rng(1234)
    for _ in range(50):
        data = {
            'd_np1': rng.uniform(0.0, 0.9),
            'd_n': 0.0,
            'e_np1': rng.normal(scale=1e-3, size=6),
            'e_n': rng.normal(scale=1e-3, size=6),
            's_np1': rng.normal(scale=200.0, size=6),
            's_n': rng.normal(scale=200.0, size=6),
            'T_np1': 550.0,
            'T_n': 550.0,
            't_np1': rng.uniform(1.0, 2.0),
            't_n': 0.0,
        }
        data['d_n'] = data['d_np1'] * rng.uniform(0.0, 1.0)
        assert call(law, 'damage', data) >= 0.0


@pytest.mark.parametrize("name", ['classical', 'powerlaw', 'exponential', 'combined'])
def test_no_damage_without_loading(name, elastic):
    law = make_laws(elastic)[name]
    strain = np.array([0.001, -0.0003, -0.0003, 0.0, 0.0, 0.0])
    data = {
        'd_np1': 0.0, 'd_n': 0.0,
        'e_np1': strain, 'e_n': strain.copy(),
        's_np1': np.zeros(6), 's_n': np.zeros(6),
        'T_np1': 550.0, 'T_n': 550.0,
        't_np1': 1.0, 't_n': 0.0,
    }
    assert call(law, 'damage', data) == 0.0


def test_power_law_closed_form_increment(elastic):
    """A = 100, a = 2 at se = 50 and dep = 0.001 gives 100 * 50^2 * 0.001."""
    law = PowerLawDamage(A=100.0, a=2.0, elastic=elastic)
    s = np.array([50.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    e_np1 = np.array([0.001, -0.0005, -0.0005, 0.0, 0.0, 0.0])
    e_n = np.zeros(6)

    assert von_mises(s) == pytest.approx(50.0)
    dep, _ = inelastic_strain_increment(s, s, e_np1, e_n, elastic.S(0.0))
    assert dep == pytest.approx(0.001)

    increment = law.damage(0.0, 0.0, e_np1, e_n, s, s, 0.0, 0.0, 1.0, 0.0)
    assert increment == pytest.approx(100.0 * 50.0 ** 2 * 0.001, rel=1e-12)


def test_exponential_work_depends_on_damage(elastic, step_data):
    law = make_laws(elastic)['exponential']
    low = call(law, 'damage', step_data, d_np1=0.05)
    high = call(law, 'damage', step_data, d_np1=0.3)
    assert high > low > 0.0


@pytest.mark.parametrize("name", ['classical', 'powerlaw', 'exponential'])
def test_single_law_combination_reproduces_the_law(name, elastic, step_data):
    law = make_laws(elastic)[name]
    combined = CombinedDamage([law])
    assert call(combined, 'damage', step_data) == call(law, 'damage', step_data)
    assert call(combined, 'ddamage_dd', step_data) == call(law, 'ddamage_dd', step_data)
    np.testing.assert_array_equal(call(combined, 'ddamage_de', step_data),
                                  call(law, 'ddamage_de', step_data))
    np.testing.assert_array_equal(call(combined, 'ddamage_ds', step_data),
                                  call(law, 'ddamage_ds', step_data))


def test_superposition_adds_increments(elastic, step_data):
    combined = make_laws(elastic)['combined']
    expected = sum(call(law, 'damage', step_data) for law in combined.laws)
    assert call(combined, 'damage', step_data) == pytest.approx(expected)


def test_maximum_policy_selects_dominant_law(elastic, step_data):
    laws = make_laws(elastic)['combined'].laws
    combined = CombinedDamage(laws, policy='maximum')
    increments = [call(law, 'damage', step_data) for law in laws]
    dominant = laws[int(np.argmax(increments))]
    assert call(combined, 'damage', step_data) == max(increments)
    np.testing.assert_array_equal(call(combined, 'ddamage_ds', step_data),
                                  call(dominant, 'ddamage_ds', step_data))


def test_combinations_nest(elastic, step_data):
    laws = make_laws(elastic)
    nested = CombinedDamage([CombinedDamage([laws['powerlaw']]), laws['classical']])
    expected = call(laws['powerlaw'], 'damage', step_data) + call(laws['classical'], 'damage', step_data)
    assert call(nested, 'damage', step_data) == pytest.approx(expected)


def test_combination_propagates_elastic_model(elastic):
    inner = PowerLawDamage(A=1e-4, a=2.0)
    combined = CombinedDamage([inner, ClassicalCreepDamage(300.0, 4.0, 3.0)])
    combined.set_elastic_model(elastic)
    assert inner.elastic is elastic


def test_strain_driven_law_requires_elastic_model(step_data):
    law = PowerLawDamage(A=1e-4, a=2.0)
    with pytest.raises(ConfigurationError):
        call(law, 'damage', step_data)


@pytest.mark.parametrize("laws, policy", [
    ([], 'superposition'),
    (["not a law"], 'superposition'),
    ([ClassicalCreepDamage(300.0, 4.0, 3.0)], 'product'),
])
def test_invalid_combinations_are_rejected(laws, policy):
    with pytest.raises(ConfigurationError):
        CombinedDamage(laws, policy=policy)
