"""
Damage solver package for scalar continuum damage at a material point.

Provides scalar damage laws (classical creep rupture, power law, exponential
work and combinations of these), the implicit scalar damage update with its
consistent tangent, and the undamaged base models and elasticity it wraps.
"""

from .errors import (
    DamageSolverError,
    NonConvergenceError,
    NonPhysicalDamageError,
    ConfigurationError,
)
from .material_models import (
    tensor_to_mandel,
    mandel_to_tensor,
    deviatoric,
    von_mises,
    ConstantInterpolate,
    PiecewiseLinearInterpolate,
    PolynomialInterpolate,
    make_interpolate,
    IsotropicLinearElasticModel,
    VoceIsotropicHardeningModel,
    LinearIsotropicHardeningModel,
    NoIsotropicHardeningModel,
    SmallStrainModel,
    SmallStrainElasticity,
    SmallStrainJ2Plasticity,
)
from .damage_models import (
    SDTrialState,
    ScalarDamageLaw,
    ClassicalCreepDamage,
    StrainDrivenDamage,
    PowerLawDamage,
    ExponentialWorkDamage,
    CombinedDamage,
    DamagedModel,
    ScalarDamagedModel,
    inelastic_strain_increment,
    create_damage_law,
    create_damage_model,
    load_damage_model,
)
from .solver import (
    solve,
    generate_cyclic_path,
    uniaxial_strain_history,
    DamageMaterialDriver,
)

__all__ = [
    "DamageSolverError",
    "NonConvergenceError",
    "NonPhysicalDamageError",
    "ConfigurationError",
    "tensor_to_mandel",
    "mandel_to_tensor",
    "deviatoric",
    "von_mises",
    "ConstantInterpolate",
    "PiecewiseLinearInterpolate",
    "PolynomialInterpolate",
    "make_interpolate",
    "IsotropicLinearElasticModel",
    "VoceIsotropicHardeningModel",
    "LinearIsotropicHardeningModel",
    "NoIsotropicHardeningModel",
    "SmallStrainModel",
    "SmallStrainElasticity",
    "SmallStrainJ2Plasticity",
    "SDTrialState",
    "ScalarDamageLaw",
    "ClassicalCreepDamage",
    "StrainDrivenDamage",
    "PowerLawDamage",
    "ExponentialWorkDamage",
    "CombinedDamage",
    "DamagedModel",
    "ScalarDamagedModel",
    "inelastic_strain_increment",
    "create_damage_law",
    "create_damage_model",
    "load_damage_model",
    "solve",
    "generate_cyclic_path",
    "uniaxial_strain_history",
    "DamageMaterialDriver",
]
