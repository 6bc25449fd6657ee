"""Metabolism: per-individual mass lost to respiration.

Ectotherms: field (active) and basal metabolic rates both follow the
metabolic theory of ecology at ambient temperature,

    B = B0 × M^b × exp(−E / (k T)),

blended by the proportion of time active. Endotherms use a single field
rate evaluated at a fixed 37 °C body temperature. Energy (kJ) is turned
into mass (g) by a fixed energy scalar.

The loss is capped at the mass the individual has after this step's
feeding, and the population loss is sent to the cell's respiratory CO2
pool.

References:
  - Brown et al. (2004) Ecology 85:1771-1789
  - Harfoot et al. (2014) PLoS Biol 12:e1001841
"""

from __future__ import annotations

import math

from cohort_ecology.config import MetabolismSection
from cohort_ecology.context import CellStepContext
from cohort_ecology.environment import TEMPERATURE
from cohort_ecology.types import (
    BIOMASS,
    RESPIRATORY_POOL,
    Cohort,
    DeltaAccumulator,
    ModelPreconditionError,
    Thermoregulation,
    TrophicMode,
)

KELVIN_OFFSET = 273.0


def _arrhenius(normalization: float, mass: float, exponent: float,
               activation_energy: float, kelvin: float,
               boltzmann: float) -> float:
    return (normalization * mass ** exponent
            * math.exp(-activation_energy / (boltzmann * kelvin)))


def ectotherm_metabolic_rate(mass: float, temperature_k: float,
                             proportion_active: float,
                             params: MetabolismSection) -> float:
    """Mass lost per individual per formulation time unit (g)."""
    field_kj = _arrhenius(params.ecto_normalization_constant, mass,
                          params.ecto_mass_exponent, params.ecto_activation_energy,
                          temperature_k, params.boltzmann_constant)
    basal_kj = _arrhenius(params.ecto_bmr_normalization_constant, mass,
                          params.ecto_bmr_mass_exponent, params.ecto_activation_energy,
                          temperature_k, params.boltzmann_constant)
    blended = proportion_active * field_kj + (1.0 - proportion_active) * basal_kj
    return blended * params.energy_scalar


def endotherm_metabolic_rate(mass: float, params: MetabolismSection) -> float:
    """Mass lost per individual per formulation time unit (g)."""
    kelvin = params.endo_body_temperature + KELVIN_OFFSET
    field_kj = _arrhenius(params.endo_normalization_constant, mass,
                          params.endo_mass_exponent, params.endo_activation_energy,
                          kelvin, params.boltzmann_constant)
    return field_kj * params.energy_scalar


def metabolise(cohort: Cohort, ctx: CellStepContext,
               deltas: DeltaAccumulator) -> None:
    """Write the metabolic mass loss for one acting cohort.

    Raises:
        ModelPreconditionError: If the thermoregulation trait is invalid.
    """
    fg = cohort.functional_group
    if ctx.traits.trophic_mode(fg) is TrophicMode.AUTOTROPH:
        return

    params = ctx.config.metabolism
    mass = cohort.individual_body_mass
    mode = ctx.traits.thermoregulation(fg)
    if mode is Thermoregulation.ENDOTHERM:
        rate = endotherm_metabolic_rate(mass, params)
    elif mode is Thermoregulation.ECTOTHERM:
        kelvin = ctx.environment.get(TEMPERATURE, ctx.month) + KELVIN_OFFSET
        rate = ectotherm_metabolic_rate(mass, kelvin,
                                        cohort.proportion_time_active, params)
    else:
        raise ModelPreconditionError(f"No metabolism model for {mode}")

    loss = -rate * ctx.delta_t(params.time_unit)
    available = mass + deltas.get(BIOMASS, 'predation') + deltas.get(BIOMASS, 'herbivory')
    loss = max(loss, -available)

    deltas.set(BIOMASS, 'metabolism', loss)
    deltas.set(RESPIRATORY_POOL, 'metabolism', -loss * cohort.abundance)
    ctx.tracker.metabolism(ctx.index, ctx.timestep, cohort.cohort_id,
                           -loss, cohort.abundance)
