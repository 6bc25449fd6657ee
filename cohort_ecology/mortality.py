"""Mortality: background, senescence and starvation.

Three hazard rates (per formulation time unit, scaled by Δt) are summed
and turned into the number of individuals that die this step:

    dead = N × (1 − exp(−(μ_bg + μ_sen + μ_starv)))

  μ_bg    constant
  μ_sen   0 before maturity; afterwards μ0 × exp(age_since_maturity / (time_to_maturity + 1))
  μ_starv 0 unless body mass is below its historical maximum; then a
          logistic in the mass ratio, maximal for emaciated individuals

Body mass used here includes every biomass delta written so far this
step, capped at adult mass. A cohort whose mass would fall to zero or
below dies entirely. The mass of the dead goes to the organic pool.

References:
  - Harfoot et al. (2014) PLoS Biol 12:e1001841
"""

from __future__ import annotations

import math
from typing import Dict

from cohort_ecology.config import MortalitySection
from cohort_ecology.context import CellStepContext
from cohort_ecology.types import (
    ABUNDANCE,
    BIOMASS,
    ORGANIC_POOL,
    REPRODUCTIVE_BIOMASS,
    Cohort,
    DeltaAccumulator,
)


def senescence_rate(cohort: Cohort, timestep: int,
                    params: MortalitySection) -> float:
    """Age-related hazard per formulation time unit (0 if immature)."""
    if not cohort.is_mature:
        return 0.0
    time_to_maturity = cohort.maturity_timestep - cohort.birth_timestep
    age_post_maturity = timestep - cohort.maturity_timestep
    return params.senescence_rate * math.exp(age_post_maturity / (time_to_maturity + 1.0))


def starvation_rate(body_mass: float, maximum_achieved_mass: float,
                    params: MortalitySection) -> float:
    """Starvation hazard per formulation time unit.

    Zero at or above the historical maximum mass; otherwise
    μ_max / (1 + exp(−k)), k = −(M − c M_max) / (s M_max).
    """
    if body_mass >= maximum_achieved_mass:
        return 0.0
    k = -(body_mass - params.starvation_inflection_point * maximum_achieved_mass) / (
        params.starvation_scaling * maximum_achieved_mass)
    return params.starvation_max_rate / (1.0 + math.exp(-k))


def mortality_rates(cohort: Cohort, body_mass: float, timestep: int,
                    params: MortalitySection, delta_t: float) -> Dict[str, float]:
    """The three hazards, already scaled to one model time step."""
    return {
        'background': params.background_rate * delta_t,
        'senescence': senescence_rate(cohort, timestep, params) * delta_t,
        'starvation': starvation_rate(body_mass, cohort.maximum_achieved_mass,
                                      params) * delta_t,
    }


def apply_mortality(cohort: Cohort, ctx: CellStepContext,
                    deltas: DeltaAccumulator) -> float:
    """Write mortality deltas for one acting cohort.

    Returns:
        Number of individuals that die.
    """
    params = ctx.config.mortality
    body_mass = min(cohort.adult_mass,
                    cohort.individual_body_mass + deltas.total(BIOMASS))
    reproductive_mass = (cohort.individual_reproductive_mass
                         + deltas.total(REPRODUCTIVE_BIOMASS))

    if body_mass <= 0.0:
        rates = {}
        dead = cohort.abundance
    else:
        rates = mortality_rates(cohort, body_mass, ctx.timestep, params,
                                ctx.delta_t(params.time_unit))
        dead = -math.expm1(-sum(rates.values())) * cohort.abundance

    deltas.set(ABUNDANCE, 'mortality', -dead)
    deltas.set(ORGANIC_POOL, 'mortality', dead * (body_mass + reproductive_mass))
    ctx.tracker.mortality(ctx.index, ctx.timestep, cohort.cohort_id, dead, rates)
    return dead
