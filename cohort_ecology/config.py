"""Configuration system for Cohort-Ecology.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Every section is a frozen dataclass: the configuration is built once at
startup and passed read-only into every process constructor. To vary a
parameter, load with `sweep_overrides` or use `dataclasses.replace`.

Defaults reproduce the published ecological parameter set of the
Madingley general ecosystem model (Harfoot et al. 2014, PLoS Biol 12:e1001841).
Each process section carries the time unit its rates are expressed in;
processes scale by convert_time_units(simulation.time_step_unit, time_unit).
"""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from cohort_ecology.utils import TIME_UNIT_DAYS


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SimulationSection:
    """Top-level simulation timing and control."""
    seed: int = 42
    time_step_unit: str = 'month'         # global model time step
    parallel_workers: int = 1             # 1 = serial; >1 = ThreadPoolExecutor
    strict_preconditions: bool = True     # False = log-and-clamp
    extinction_threshold: float = 1.0     # cohorts at/below this abundance die
    plankton_dispersal_threshold: float = 1.0e-3  # g; below → advective in ocean
    randomize_cohort_order: bool = True   # False = group, then list order


@dataclass(frozen=True)
class ActivitySection:
    """Terrestrial ectotherm thermal-tolerance model (Deutsch et al. 2008)."""
    warming_tolerance_intercept: float = 6.61
    warming_tolerance_slope: float = 1.6
    tsm_intercept: float = 1.51           # thermal safety margin (°C)
    tsm_slope: float = 1.53


@dataclass(frozen=True)
class HerbivorySection:
    """Holling type II herbivory on autotroph stocks."""
    time_unit: str = 'day'
    handling_time_scalar_terrestrial: float = 0.7
    handling_time_scalar_marine: float = 0.7
    handling_time_exponent_terrestrial: float = 0.7
    handling_time_exponent_marine: float = 0.7
    rate_constant: float = 1.0e-11
    rate_mass_exponent: float = 1.0
    attack_rate_exponent_terrestrial: float = 2.0
    attack_rate_exponent_marine: float = 2.0
    handling_time_reference_mass: float = 1.0   # g
    edible_fraction_terrestrial: float = 0.1
    edible_fraction_marine: float = 1.0


@dataclass(frozen=True)
class PredationSection:
    """Size-structured predation with log-normal feeding preference."""
    time_unit: str = 'day'
    handling_time_scalar_terrestrial: float = 0.5
    handling_time_scalar_marine: float = 0.5
    handling_time_exponent_terrestrial: float = 0.7
    handling_time_exponent_marine: float = 0.7
    handling_time_reference_mass: float = 1.0   # g
    kill_rate_constant: float = 1.0e-6
    kill_rate_constant_mass_exponent: float = 1.0
    feeding_preference_sd: float = 0.7
    n_mass_bins: int = 12                  # must be even


@dataclass(frozen=True)
class MetabolismSection:
    """Arrhenius metabolism for ectotherms and endotherms."""
    time_unit: str = 'day'
    boltzmann_constant: float = 8.617e-5   # eV/K
    energy_scalar: float = 1.0 / 27.25     # g per kJ
    # Ectotherm field and basal metabolic rates
    ecto_mass_exponent: float = 0.88
    ecto_normalization_constant: float = 148984000000.0
    ecto_activation_energy: float = 0.69   # eV
    ecto_bmr_normalization_constant: float = 41918272883.0
    ecto_bmr_mass_exponent: float = 0.69
    # Endotherm field metabolic rate at fixed body temperature
    endo_mass_exponent: float = 0.7
    endo_normalization_constant: float = 908090839730.0
    endo_activation_energy: float = 0.69
    endo_body_temperature: float = 37.0    # °C


@dataclass(frozen=True)
class MortalitySection:
    """Background, senescence and starvation hazard rates."""
    time_unit: str = 'day'
    background_rate: float = 0.001
    senescence_rate: float = 0.003
    starvation_inflection_point: float = 0.6
    starvation_scaling: float = 0.05
    starvation_max_rate: float = 1.0


@dataclass(frozen=True)
class ReproductionSection:
    """Reproductive mass assignment and reproduction events."""
    time_unit: str = 'day'
    mass_ratio_threshold: float = 1.5
    mass_evolution_probability_threshold: float = 0.95
    mass_evolution_sd: float = 0.05
    semelparity_adult_mass_allocation: float = 0.5
    offspring_trophic_index: Dict[str, float] = field(
        default_factory=lambda: {'herbivore': 2.0, 'omnivore': 2.5, 'carnivore': 3.0}
    )


@dataclass(frozen=True)
class DispersalSection:
    """Advective, diffusive and responsive dispersal."""
    # Advective (marine plankton)
    horizontal_diffusivity: float = 100.0         # m²/s
    advective_timestep_hours: float = 18.0
    # Diffusive (immature cohorts)
    diffusive_time_unit: str = 'day'
    diffusive_speed_scalar: float = 0.0278        # km per time unit per g^exp
    diffusive_speed_exponent: float = 0.48
    # Responsive (mature cohorts)
    responsive_time_unit: str = 'day'
    density_threshold_scaling: float = 50000.0
    starvation_dispersal_mass_threshold: float = 0.8
    responsive_speed_scalar: float = 0.0278
    responsive_speed_exponent: float = 0.48


@dataclass(frozen=True)
class EcologyConfig:
    """Complete engine configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    activity: ActivitySection = field(default_factory=ActivitySection)
    herbivory: HerbivorySection = field(default_factory=HerbivorySection)
    predation: PredationSection = field(default_factory=PredationSection)
    metabolism: MetabolismSection = field(default_factory=MetabolismSection)
    mortality: MortalitySection = field(default_factory=MortalitySection)
    reproduction: ReproductionSection = field(default_factory=ReproductionSection)
    dispersal: DispersalSection = field(default_factory=DispersalSection)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'activity': ActivitySection,
    'herbivory': HerbivorySection,
    'predation': PredationSection,
    'metabolism': MetabolismSection,
    'mortality': MortalitySection,
    'reproduction': ReproductionSection,
    'dispersal': DispersalSection,
}


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a section dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> EcologyConfig:
    """Convert a merged YAML dict to an EcologyConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return EcologyConfig(**sections)


def config_to_dict(config: EcologyConfig) -> Dict:
    """Plain nested dict of a config (round-trips through _yaml_to_config)."""
    return dataclasses.asdict(config)


def validate_config(config: EcologyConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Time units are supported
      - Worker count and probability-like parameters are in range
      - Predation mass-bin count is a positive even number
      - Rate and scale parameters that appear as divisors are positive
    """
    sim = config.simulation
    units = {
        'simulation.time_step_unit': sim.time_step_unit,
        'herbivory.time_unit': config.herbivory.time_unit,
        'predation.time_unit': config.predation.time_unit,
        'metabolism.time_unit': config.metabolism.time_unit,
        'mortality.time_unit': config.mortality.time_unit,
        'reproduction.time_unit': config.reproduction.time_unit,
        'dispersal.diffusive_time_unit': config.dispersal.diffusive_time_unit,
        'dispersal.responsive_time_unit': config.dispersal.responsive_time_unit,
    }
    for name, unit in units.items():
        if str(unit).lower() not in TIME_UNIT_DAYS:
            raise ValueError(
                f"{name} must be one of {sorted(TIME_UNIT_DAYS)}, got '{unit}'"
            )

    if sim.seed < 0:
        raise ValueError("simulation.seed must be non-negative")
    if sim.parallel_workers < 1:
        raise ValueError(
            f"simulation.parallel_workers must be >= 1, got {sim.parallel_workers}"
        )
    if sim.extinction_threshold < 0:
        raise ValueError("simulation.extinction_threshold must be >= 0")

    p = config.predation
    if p.n_mass_bins < 2 or p.n_mass_bins % 2 != 0:
        raise ValueError(
            f"predation.n_mass_bins must be a positive even number, "
            f"got {p.n_mass_bins}"
        )
    if p.feeding_preference_sd <= 0:
        raise ValueError("predation.feeding_preference_sd must be positive")
    if p.handling_time_reference_mass <= 0:
        raise ValueError("predation.handling_time_reference_mass must be positive")
    if config.herbivory.handling_time_reference_mass <= 0:
        raise ValueError("herbivory.handling_time_reference_mass must be positive")

    for name in ('edible_fraction_terrestrial', 'edible_fraction_marine'):
        value = getattr(config.herbivory, name)
        if not (0.0 <= value <= 1.0):
            raise ValueError(f"herbivory.{name} must be in [0, 1], got {value}")

    m = config.mortality
    if m.background_rate < 0 or m.senescence_rate < 0 or m.starvation_max_rate < 0:
        raise ValueError("mortality rates must be non-negative")
    if m.starvation_scaling <= 0:
        raise ValueError("mortality.starvation_scaling must be positive")

    r = config.reproduction
    if r.mass_ratio_threshold <= 0:
        raise ValueError("reproduction.mass_ratio_threshold must be positive")
    if not (0.0 <= r.mass_evolution_probability_threshold <= 1.0):
        raise ValueError(
            "reproduction.mass_evolution_probability_threshold must be in [0, 1]"
        )
    if not (0.0 <= r.semelparity_adult_mass_allocation <= 1.0):
        raise ValueError(
            "reproduction.semelparity_adult_mass_allocation must be in [0, 1]"
        )
    if r.mass_evolution_sd < 0:
        raise ValueError("reproduction.mass_evolution_sd must be >= 0")

    d = config.dispersal
    if d.advective_timestep_hours <= 0:
        raise ValueError("dispersal.advective_timestep_hours must be positive")
    if d.horizontal_diffusivity < 0:
        raise ValueError("dispersal.horizontal_diffusivity must be >= 0")
    if not (0.0 < d.starvation_dispersal_mass_threshold < 1.0):
        raise ValueError(
            "dispersal.starvation_dispersal_mass_threshold must be in (0, 1)"
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> EcologyConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML (skipped if missing).
        sweep_overrides: Optional dict of parameter sweep overrides.

    Returns:
        Validated EcologyConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, copy.deepcopy(sweep_overrides))

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config(overrides: Optional[Dict] = None) -> EcologyConfig:
    """Return an EcologyConfig with default values, optionally overridden.

    Args:
        overrides: Nested dict in YAML layout, e.g.
            {'simulation': {'parallel_workers': 4}}.
    """
    if overrides:
        config = _yaml_to_config(deep_merge({}, copy.deepcopy(overrides)))
    else:
        config = EcologyConfig()
    validate_config(config)
    return config
