"""Reproduction: reproductive mass assignment and reproduction events.

Mass assignment. Body mass above adult mass (after this step's other
biomass deltas) becomes reproductive potential. The first assignment
marks the cohort as mature.

Reproduction event. When (body + reproductive mass)/adult mass exceeds a
threshold, and the cell is in its breeding season (terrestrial) or is
marine (no seasonal gating), a new offspring cohort is created.

  iteroparous   offspring mass = reproductive potential
  semelparous   offspring mass = reproductive potential
                                 + a fixed share of adult body mass

Offspring usually inherit the parent's juvenile and adult masses. With a
small probability their masses are redrawn around the parent's values
(bounded by the group's mass limits); abundance is rescaled so that the
mass allocated to offspring is conserved.

References:
  - Harfoot et al. (2014) PLoS Biol 12:e1001841
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from cohort_ecology.config import ReproductionSection
from cohort_ecology.context import CellStepContext
from cohort_ecology.environment import BREEDING_SEASON
from cohort_ecology.traits import MAXIMUM_MASS, MINIMUM_MASS, FunctionalGroupTable
from cohort_ecology.types import (
    BIOMASS,
    REPRODUCTIVE_BIOMASS,
    Cohort,
    DeltaAccumulator,
    ModelPreconditionError,
    Realm,
    ReproductiveStrategy,
)

logger = logging.getLogger(__name__)


def assign_reproductive_mass(cohort: Cohort, ctx: CellStepContext,
                             deltas: DeltaAccumulator) -> float:
    """Move body mass above adult mass into reproductive potential.

    Sets `maturity_timestep` on the first assignment.

    Returns:
        Mass moved per individual (g), 0 if none.
    """
    projected = cohort.individual_body_mass + deltas.total(BIOMASS)
    surplus = projected - cohort.adult_mass
    if surplus <= 0.0:
        return 0.0

    if not cohort.is_mature:
        cohort.maturity_timestep = ctx.timestep
        if not cohort.merged:
            ctx.tracker.maturity(ctx.index, ctx.timestep, cohort.cohort_id,
                                 cohort.birth_timestep, cohort.juvenile_mass,
                                 cohort.adult_mass)

    deltas.add(REPRODUCTIVE_BIOMASS, 'reproduction', surplus)
    deltas.add(BIOMASS, 'reproduction', -surplus)
    return surplus


def offspring_masses(parent: Cohort, traits: FunctionalGroupTable,
                     params: ReproductionSection,
                     rng: np.random.Generator) -> Tuple[float, float]:
    """Juvenile and adult mass of an offspring cohort.

    Returns:
        (juvenile_mass, adult_mass)
    """
    if rng.random() > params.mass_evolution_probability_threshold:
        fg = parent.functional_group
        sd = params.mass_evolution_sd
        juvenile = max(rng.normal(parent.juvenile_mass, sd * parent.juvenile_mass),
                       traits.property_of(fg, MINIMUM_MASS))
        adult = min(rng.normal(parent.adult_mass, sd * parent.adult_mass),
                    traits.property_of(fg, MAXIMUM_MASS))
        return float(juvenile), float(adult)
    return parent.juvenile_mass, parent.adult_mass


def breeding_conditions_met(ctx: CellStepContext) -> bool:
    env = ctx.environment
    return (env.get(BREEDING_SEASON, ctx.month) == 1.0
            or env.realm is Realm.MARINE)


def run_reproduction_event(cohort: Cohort, ctx: CellStepContext,
                           deltas: DeltaAccumulator) -> Optional[Cohort]:
    """Create an offspring cohort if the parent is ready to breed.

    The offspring is appended to the parent's functional-group list in the
    acting cell.

    Returns:
        The new cohort, or None if no event occurred.

    Raises:
        ModelPreconditionError: On an unrecognised reproductive strategy
            or nutrition source.
    """
    params = ctx.config.reproduction
    fg = cohort.functional_group
    body_mass = cohort.individual_body_mass + deltas.total(BIOMASS)
    reproductive_mass = (cohort.individual_reproductive_mass
                         + deltas.total(REPRODUCTIVE_BIOMASS))
    mass_ratio = (body_mass + reproductive_mass) / cohort.adult_mass

    if not (mass_ratio > params.mass_ratio_threshold and breeding_conditions_met(ctx)):
        return None

    strategy = ctx.traits.reproductive_strategy(fg)
    if strategy is ReproductiveStrategy.ITEROPARITY:
        adult_mass_lost = 0.0
    elif strategy is ReproductiveStrategy.SEMELPARITY:
        adult_mass_lost = params.semelparity_adult_mass_allocation * body_mass
    else:
        raise ModelPreconditionError(f"Unhandled reproductive strategy {strategy}")

    abundance = (cohort.abundance * (adult_mass_lost + reproductive_mass)
                 / cohort.juvenile_mass)
    juvenile, adult = offspring_masses(cohort, ctx.traits, params, ctx.rng)
    abundance = abundance * cohort.juvenile_mass / juvenile

    source = ctx.traits.nutrition_source(fg)
    try:
        trophic_index = params.offspring_trophic_index[source.value]
    except KeyError:
        raise ModelPreconditionError(
            f"No offspring trophic index configured for '{source.value}'"
        ) from None

    offspring = Cohort(
        functional_group=fg,
        juvenile_mass=juvenile,
        adult_mass=adult,
        individual_body_mass=juvenile,
        abundance=max(0.0, abundance),
        birth_timestep=ctx.timestep,
        cohort_id=ctx.ids.next_id(),
        log_optimal_prey_body_size_ratio=cohort.log_optimal_prey_body_size_ratio,
        proportion_time_active=cohort.proportion_time_active,
        trophic_index=trophic_index,
    )
    ctx.cohorts.setdefault(fg, []).append(offspring)

    deltas.add(REPRODUCTIVE_BIOMASS, 'reproduction', -reproductive_mass)
    deltas.add(BIOMASS, 'reproduction', -adult_mass_lost)

    ctx.tracker.new_cohort(ctx.index, ctx.timestep, cohort.cohort_id,
                           offspring.cohort_id, offspring.abundance,
                           juvenile, adult)
    logger.debug("Cell %s t=%d: cohort %d produced cohort %d (N=%.3g)",
                 ctx.index, ctx.timestep, cohort.cohort_id,
                 offspring.cohort_id, offspring.abundance)
    return offspring


def reproduce(cohort: Cohort, ctx: CellStepContext,
              deltas: DeltaAccumulator) -> Optional[Cohort]:
    """Mass assignment followed by a possible reproduction event."""
    assign_reproductive_mass(cohort, ctx, deltas)
    return run_reproduction_event(cohort, ctx, deltas)
