"""Eating: herbivory on autotroph stocks and predation on cohorts.

Both follow the same two phases.

  1. Potential intake per food item from a ratio-dependent functional
     response, and the time needed to handle it.
  2. Realised intake from an exponential saturation law shared by all
     items of the acting cohort:

       eaten = available × (1 − exp(−N × Δt × p_active × (pot/(1+H)) / available))

     where H is the total handling time over all items. Omnivores pool H
     across herbivory and predation before either realised intake is
     computed.

Herbivory removes eaten biomass from the stocks at once; predation
removes eaten individuals from prey cohorts at once. Everything that
happens to the acting cohort itself goes into its DeltaAccumulator.

Trophic index: herbivory contributes trophic level 1 per gram eaten,
predation the prey's trophic index. The acting cohort's new index is
1 + (mass-weighted mean of food trophic levels), or last step's value
if nothing was eaten.

References:
  - Harfoot et al. (2014) PLoS Biol 12:e1001841, Supplementary S1
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from cohort_ecology.config import HerbivorySection, PredationSection
from cohort_ecology.context import CellStepContext
from cohort_ecology.traits import CARNIVORY_ASSIMILATION, HERBIVORY_ASSIMILATION
from cohort_ecology.types import (
    BIOMASS,
    Cohort,
    DeltaAccumulator,
    ModelPreconditionError,
    NutritionSource,
    Realm,
    Stock,
)


HECTARES_PER_KM2 = 100.0


def realised_intake(available: float, potential: float, consumer_effort: float,
                    total_handling_time: float) -> float:
    """Amount of one food item consumed in a time step.

    Args:
        available: Edible biomass (g) or prey abundance.
        potential: Potential intake rate for this item.
        consumer_effort: Consumer abundance × Δt × proportion time eating.
        total_handling_time: Handling time summed over every food item.

    Returns:
        Consumed amount in [0, available]; exactly 0 when available ≤ 0.
    """
    if available <= 0.0:
        return 0.0
    instant_fraction = consumer_effort * (potential / (1.0 + total_handling_time)) / available
    return available * -math.expm1(-instant_fraction)


# ═══════════════════════════════════════════════════════════════════════
# HERBIVORY
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class HerbivoryPotential:
    """Phase-1 result for one herbivore cohort."""
    targets: List[Tuple[Stock, float]] = field(default_factory=list)
    handling_time: float = 0.0
    edible_fraction: float = 1.0


def _herbivory_realm_params(params: HerbivorySection, realm: Realm):
    if realm is Realm.TERRESTRIAL:
        return (params.edible_fraction_terrestrial,
                params.attack_rate_exponent_terrestrial,
                params.handling_time_scalar_terrestrial,
                params.handling_time_exponent_terrestrial)
    return (params.edible_fraction_marine,
            params.attack_rate_exponent_marine,
            params.handling_time_scalar_marine,
            params.handling_time_exponent_marine)


def herbivory_potential(cohort: Cohort, ctx: CellStepContext) -> HerbivoryPotential:
    """Potential biomass eaten from each autotroph stock, and handling time."""
    params = ctx.config.herbivory
    edible_fraction, attack_exponent, ht_scalar, ht_exponent = \
        _herbivory_realm_params(params, ctx.environment.realm)
    hectares = ctx.environment.cell_area * HECTARES_PER_KM2
    mass = cohort.individual_body_mass

    rate = params.rate_constant * mass ** params.rate_mass_exponent
    handling_per_unit = ht_scalar * (params.handling_time_reference_mass / mass) ** ht_exponent

    result = HerbivoryPotential(edible_fraction=edible_fraction)
    for fg in ctx.traits.autotroph_indices():
        for stock in ctx.stocks.get(fg, []):
            edible = stock.total_biomass * edible_fraction
            potential = rate * (edible / hectares) ** attack_exponent if edible > 0 else 0.0
            result.targets.append((stock, potential))
            result.handling_time += potential * handling_per_unit
    return result


def run_herbivory(cohort: Cohort, potential: HerbivoryPotential,
                  total_handling_time: float, assimilation: float,
                  ctx: CellStepContext, deltas: DeltaAccumulator) -> float:
    """Remove eaten biomass from stocks and credit the herbivore.

    Returns:
        Total biomass eaten (g), weighted by trophic level 1.
    """
    effort = (cohort.abundance * ctx.delta_t(ctx.config.herbivory.time_unit)
              * cohort.proportion_time_active)
    trophic_sum = 0.0
    for stock, pot in potential.targets:
        edible = stock.total_biomass * potential.edible_fraction
        eaten = realised_intake(edible, pot, effort, total_handling_time)
        stock.total_biomass -= eaten
        trophic_sum += eaten
        if cohort.abundance > 0:
            deltas.add(BIOMASS, 'herbivory', eaten * assimilation / cohort.abundance)
    return trophic_sum


# ═══════════════════════════════════════════════════════════════════════
# PREDATION
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class PredationPotential:
    """Phase-1 result for one predator cohort."""
    targets: List[Tuple[Cohort, float]] = field(default_factory=list)
    handling_time: float = 0.0


def _predation_handling_params(params: PredationSection, realm: Realm):
    if realm is Realm.TERRESTRIAL:
        return params.handling_time_scalar_terrestrial, params.handling_time_exponent_terrestrial
    return params.handling_time_scalar_marine, params.handling_time_exponent_marine


def mass_bin(prey_mass: float, log_optimal_prey_mass: float,
             params: PredationSection) -> int:
    """Prey mass-aggregation bin relative to the predator's optimum.

    Bins are half a feeding-preference SD wide, centred on the optimum.
    Valid bins satisfy 0 < bin < n_mass_bins.
    """
    half_sd = params.feeding_preference_sd * 0.5
    return int((math.log(prey_mass) - log_optimal_prey_mass) / half_sd
               + params.n_mass_bins // 2)


def feeding_preference(prey_mass: float, predator_mass: float,
                       log_optimal_ratio: float, sd: float) -> float:
    """Log-normal relative preference for a prey of `prey_mass`."""
    return math.exp(-((math.log(prey_mass / predator_mass) - log_optimal_ratio) / sd) ** 2)


def binned_prey_densities(ctx: CellStepContext, prey_groups: List[int],
                          log_optimal_prey_mass: float,
                          hectares: float) -> Dict[int, np.ndarray]:
    """Prey abundance per hectare in each mass bin, per functional group."""
    params = ctx.config.predation
    densities: Dict[int, np.ndarray] = {}
    for fg in prey_groups:
        bins = np.zeros(params.n_mass_bins)
        for prey in ctx.cohorts_at_start(fg):
            if prey.individual_body_mass <= 0:
                continue
            b = mass_bin(prey.individual_body_mass, log_optimal_prey_mass, params)
            if 0 < b < params.n_mass_bins:
                bins[b] += prey.abundance / hectares
        densities[fg] = bins
    return densities


def predation_potential(cohort: Cohort, ctx: CellStepContext) -> PredationPotential:
    """Potential individuals killed in each prey cohort, and handling time.

    Filter feeders ('allspecial' diet) only take planktonic prey, and
    their optimal prey ratio is expressed per gram of predator. The
    predator never eats its own cohort.
    """
    params = ctx.config.predation
    traits = ctx.traits
    hectares = ctx.environment.cell_area * HECTARES_PER_KM2
    ht_scalar, ht_exponent = _predation_handling_params(params, ctx.environment.realm)

    pred_mass = cohort.individual_body_mass
    filter_feeder = traits.is_filter_feeder(cohort.functional_group)
    log_ratio = cohort.log_optimal_prey_body_size_ratio
    if filter_feeder:
        log_ratio = math.log(math.exp(log_ratio) / pred_mass)
    log_optimal_prey_mass = math.log(pred_mass) + log_ratio

    kill_rate = params.kill_rate_constant * pred_mass ** params.kill_rate_constant_mass_exponent
    handling_scaling = ht_scalar * (params.handling_time_reference_mass / pred_mass) ** ht_exponent

    prey_groups = traits.heterotroph_indices()
    densities = binned_prey_densities(ctx, prey_groups, log_optimal_prey_mass, hectares)

    result = PredationPotential()
    for fg in prey_groups:
        if filter_feeder and not traits.is_planktonic(fg):
            continue
        for prey in ctx.cohorts_at_start(fg):
            if prey is cohort:
                continue
            prey_mass = prey.individual_body_mass
            if prey_mass <= 0:
                continue
            b = mass_bin(prey_mass, log_optimal_prey_mass, params)
            if not 0 < b < params.n_mass_bins:
                continue
            preference = feeding_preference(prey_mass, pred_mass, log_ratio,
                                            params.feeding_preference_sd)
            pot = kill_rate * preference * densities[fg][b] * prey.abundance / hectares
            result.targets.append((prey, pot))
            result.handling_time += pot * handling_scaling * prey_mass
    return result


def run_predation(cohort: Cohort, potential: PredationPotential,
                  total_handling_time: float, assimilation: float,
                  ctx: CellStepContext, deltas: DeltaAccumulator) -> float:
    """Remove eaten prey individuals and credit the predator.

    Returns:
        Σ (prey mass incl. reproductive mass) × individuals eaten × prey
        trophic index.
    """
    effort = (cohort.abundance * ctx.delta_t(ctx.config.predation.time_unit)
              * cohort.proportion_time_active)
    trophic_sum = 0.0
    mass_per_predator = 0.0
    for prey, pot in potential.targets:
        eaten = realised_intake(prey.abundance, pot, effort, total_handling_time)
        if eaten <= 0.0:
            continue
        prey.abundance -= eaten
        prey_total_mass = prey.individual_body_mass + prey.individual_reproductive_mass
        trophic_sum += prey_total_mass * eaten * prey.trophic_index
        if cohort.abundance > 0:
            mass_per_predator += prey_total_mass * eaten / cohort.abundance
        ctx.tracker.predation_mortality(ctx.index, ctx.timestep, cohort.cohort_id,
                                        prey.cohort_id, eaten, prey.individual_body_mass)
    deltas.set(BIOMASS, 'predation', mass_per_predator * assimilation)
    return trophic_sum


# ═══════════════════════════════════════════════════════════════════════
# EATING
# ═══════════════════════════════════════════════════════════════════════

def eat(cohort: Cohort, ctx: CellStepContext, deltas: DeltaAccumulator) -> None:
    """Run the eating process for one acting cohort.

    Raises:
        ModelPreconditionError: On an unrecognised nutrition source.
    """
    fg = cohort.functional_group
    traits = ctx.traits
    source = traits.nutrition_source(fg)
    previous_trophic_index = cohort.trophic_index

    trophic_sum = 0.0
    if source is NutritionSource.HERBIVORE:
        herb = herbivory_potential(cohort, ctx)
        trophic_sum += run_herbivory(cohort, herb, herb.handling_time,
                                     traits.property_of(fg, HERBIVORY_ASSIMILATION),
                                     ctx, deltas)
    elif source is NutritionSource.CARNIVORE:
        pred = predation_potential(cohort, ctx)
        trophic_sum += run_predation(cohort, pred, pred.handling_time,
                                     traits.property_of(fg, CARNIVORY_ASSIMILATION),
                                     ctx, deltas)
    elif source is NutritionSource.OMNIVORE:
        herb = herbivory_potential(cohort, ctx)
        pred = predation_potential(cohort, ctx)
        pooled = herb.handling_time + pred.handling_time
        trophic_sum += run_predation(cohort, pred, pooled,
                                     traits.property_of(fg, CARNIVORY_ASSIMILATION),
                                     ctx, deltas)
        trophic_sum += run_herbivory(cohort, herb, pooled,
                                     traits.property_of(fg, HERBIVORY_ASSIMILATION),
                                     ctx, deltas)
    else:
        raise ModelPreconditionError(f"No eating model for nutrition source {source}")

    biomass_eaten = 0.0
    for name, process in ((CARNIVORY_ASSIMILATION, 'predation'),
                          (HERBIVORY_ASSIMILATION, 'herbivory')):
        efficiency = _assimilation_or_zero(ctx, fg, name)
        if efficiency > 0:
            biomass_eaten += deltas.get(BIOMASS, process) / efficiency

    if biomass_eaten > 0.0:
        cohort.trophic_index = 1.0 + trophic_sum / (biomass_eaten * cohort.abundance)
    else:
        cohort.trophic_index = previous_trophic_index

    ctx.tracker.eating(ctx.index, ctx.timestep, cohort.cohort_id, fg,
                       biomass_eaten * cohort.abundance, cohort.trophic_index)


def _assimilation_or_zero(ctx: CellStepContext, fg: int, name: str) -> float:
    try:
        return ctx.traits.property_of(fg, name)
    except KeyError:
        return 0.0
