"""Dispersal: movement of cohorts between neighbouring grid cells.

One strategy is chosen per cohort per time step, in priority order:

  advective   marine cohorts that are planktonic or lighter than the
              plankton threshold drift with surface currents plus a
              random diffusive component, over several sub-steps
  responsive  mature cohorts move when starving or when their density is
              below a mass-dependent threshold
  diffusive   everyone else moves at a mass-dependent speed in a random
              direction

All three share the same geometry. A displacement (u, v) in km sweeps a
fraction of the cell area outside the cell; that fraction is split into
a longitudinal band, a latitudinal band and a diagonal corner. A uniform
draw at or below the total means the cohort leaves, and the band the
draw falls in (longitude first, then latitude, then diagonal) picks the
exit direction from the signs of u and v.

No cohort is moved here. Each move becomes a DispersalIntent posted to
the grid; the grid applies all intents in one pass after every cell has
been processed.

References:
  - Harfoot et al. (2014) PLoS Biol 12:e1001841
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np

from cohort_ecology.context import CellStepContext
from cohort_ecology.environment import U_VELOCITY, V_VELOCITY
from cohort_ecology.types import (
    CellIndex,
    Cohort,
    Direction,
    DirectionRecord,
    DispersalIntent,
    ModelPreconditionError,
    Realm,
)
from cohort_ecology.utils import convert_time_units

if TYPE_CHECKING:
    from cohort_ecology.grid import ModelGrid

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0
HOURS_PER_DAY = 24.0


class DispersalKind(Enum):
    ADVECTIVE = "advective"
    RESPONSIVE = "responsive"
    DIFFUSIVE = "diffusive"


# ═══════════════════════════════════════════════════════════════════════
# SHARED GEOMETRY
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DispersalProbabilities:
    """Probability of leaving a cell, split by exit band.

    `u_distance` and `v_distance` are the signed displacements (km) the
    bands were computed from; their signs resolve the exit direction.
    """
    total: float
    u: float
    v: float
    diagonal: float
    u_distance: float
    v_distance: float


def dispersal_probabilities(u_distance: float, v_distance: float,
                            cell_height: float, cell_width: float,
                            cell_area: float) -> DispersalProbabilities:
    """Area-swept leaving probabilities for a displacement (u, v).

    Args:
        u_distance: Eastward displacement (km).
        v_distance: Northward displacement (km).
        cell_height: Cell extent in latitude (km).
        cell_width: Cell extent in longitude (km).
        cell_area: Cell area (km²).
    """
    area_both = abs(u_distance * v_distance)
    area_u = abs(u_distance * cell_height) - area_both
    area_v = abs(v_distance * cell_width) - area_both
    return DispersalProbabilities(
        total=(area_u + area_v + area_both) / cell_area,
        u=area_u / cell_area,
        v=area_v / cell_area,
        diagonal=area_both / cell_area,
        u_distance=u_distance,
        v_distance=v_distance,
    )


def check_for_dispersal(probability: float, rng: np.random.Generator) -> float:
    """Draw u ~ U(0, 1); return u if the cohort leaves, else −1."""
    draw = rng.random()
    return draw if probability >= draw else -1.0


def select_direction(draw: float, probs: DispersalProbabilities) -> Optional[Direction]:
    """Exit direction for a uniform draw, or None when the draw means staying."""
    east = probs.u_distance > 0
    north = probs.v_distance > 0
    if draw <= probs.u:
        return Direction.E if east else Direction.W
    if draw <= probs.u + probs.v:
        return Direction.N if north else Direction.S
    if draw <= probs.total:
        if east:
            return Direction.NE if north else Direction.SE
        return Direction.NW if north else Direction.SW
    return None


def cell_to_disperse_to(grid: 'ModelGrid', cell: CellIndex,
                        probs: DispersalProbabilities, draw: float,
                        record: DirectionRecord) -> Optional[CellIndex]:
    """Destination of a cohort that has decided to leave `cell`.

    The attempt is recorded in `record` even when there is no traversable
    neighbour in that direction, in which case None is returned.
    """
    direction = select_direction(draw, probs)
    if direction is None:
        return None
    record.record(direction)
    return grid.neighbor(cell, direction)


def dispersal_speed(body_mass: float, scalar: float, exponent: float) -> float:
    return scalar * body_mass ** exponent


def choose_dispersal_kind(cohort: Cohort, ctx: CellStepContext) -> DispersalKind:
    plankton_threshold = ctx.config.simulation.plankton_dispersal_threshold
    if ctx.environment.realm is Realm.MARINE and (
            ctx.traits.is_planktonic(cohort.functional_group)
            or cohort.individual_body_mass <= plankton_threshold):
        return DispersalKind.ADVECTIVE
    if cohort.is_mature:
        return DispersalKind.RESPONSIVE
    return DispersalKind.DIFFUSIVE


def _clamped_probabilities(probs: DispersalProbabilities) -> DispersalProbabilities:
    return DispersalProbabilities(1.0, probs.u, probs.v, probs.diagonal,
                                  probs.u_distance, probs.v_distance)


def _bounded_displacement(ctx: CellStepContext, label: str, cell: CellIndex,
                          u: float, v: float, height: float,
                          width: float) -> Tuple[float, float]:
    """Check (u, v) stays within one cell; clamp to the cell extent when lenient."""
    if abs(u) >= width or abs(v) >= height:
        ctx.violation(
            f"{label} displacement ({u:.3g}, {v:.3g}) km exceeds cell "
            f"{cell} size ({width:.3g} x {height:.3g} km); time step too long"
        )
        u = math.copysign(min(abs(u), width), u)
        v = math.copysign(min(abs(v), height), v)
    return u, v


def _random_direction_probabilities(grid: 'ModelGrid', ctx: CellStepContext,
                                    speed: float, label: str
                                    ) -> DispersalProbabilities:
    cell = ctx.index
    height = grid.cell_height_km(cell)
    width = grid.cell_width_km(cell)
    theta = ctx.rng.random() * 2.0 * math.pi
    u, v = _bounded_displacement(ctx, label, cell, speed * math.cos(theta),
                                 speed * math.sin(theta), height, width)
    return dispersal_probabilities(u, v, height, width, grid.cell_area(cell))


def _attempt(grid: 'ModelGrid', ctx: CellStepContext,
             probs: DispersalProbabilities, fg: int,
             index: int) -> Optional[DispersalIntent]:
    """Single-step leave decision; posts an intent when the cohort moves."""
    cell = ctx.index
    draw = check_for_dispersal(probs.total, ctx.rng)
    if draw <= 0:
        return None
    record = DirectionRecord()
    destination = cell_to_disperse_to(grid, cell, probs, draw, record)
    if destination is None:
        return None
    intent = DispersalIntent(cell, fg, index, destination,
                             record.exit_direction, record.entry_direction)
    grid.post_intent(intent)
    return intent


# ═══════════════════════════════════════════════════════════════════════
# STRATEGIES
# ═══════════════════════════════════════════════════════════════════════

def advective_dispersal(grid: 'ModelGrid', ctx: CellStepContext, cohort: Cohort,
                        fg: int, index: int) -> Optional[DispersalIntent]:
    """Drift with surface currents over several sub-steps.

    The cohort's location is followed from cell to cell across sub-steps;
    one intent is posted if it ends outside its start cell.
    """
    params = ctx.config.dispersal
    days_per_step = convert_time_units(ctx.config.simulation.time_step_unit, 'day')
    n_substeps = int(math.ceil(days_per_step * HOURS_PER_DAY / params.advective_timestep_hours))
    substep_seconds = params.advective_timestep_hours * SECONDS_PER_HOUR
    velocity_to_km = substep_seconds / 1000.0
    diffusivity_km2 = params.horizontal_diffusivity / 1.0e6 * substep_seconds
    diffusion_sd = math.sqrt(2.0 * diffusivity_km2)

    start = ctx.index
    location = start
    record = DirectionRecord()

    for _ in range(n_substeps):
        env = grid.cell(location).environment
        u = env.get(U_VELOCITY, ctx.month) * velocity_to_km + ctx.rng.normal() * diffusion_sd
        v = env.get(V_VELOCITY, ctx.month) * velocity_to_km + ctx.rng.normal() * diffusion_sd
        height = grid.cell_height_km(location)
        width = grid.cell_width_km(location)
        u, v = _bounded_displacement(ctx, 'Advective', location, u, v, height, width)
        probs = dispersal_probabilities(u, v, height, width, grid.cell_area(location))
        if probs.total >= 1.0:
            ctx.violation(
                f"Advective dispersal probability {probs.total:.3f} >= 1 in cell {location}"
            )
            probs = _clamped_probabilities(probs)

        draw = check_for_dispersal(probs.total, ctx.rng)
        if draw > 0:
            destination = cell_to_disperse_to(grid, location, probs, draw, record)
            if destination is not None:
                location = destination

    if location == start:
        return None
    intent = DispersalIntent(start, fg, index, location,
                             record.exit_direction, record.entry_direction)
    grid.post_intent(intent)
    return intent


def diffusive_dispersal(grid: 'ModelGrid', ctx: CellStepContext, cohort: Cohort,
                        fg: int, index: int) -> Optional[DispersalIntent]:
    """Move at a body-mass-dependent speed in a uniformly random direction."""
    params = ctx.config.dispersal
    speed = dispersal_speed(cohort.individual_body_mass, params.diffusive_speed_scalar,
                            params.diffusive_speed_exponent)
    speed *= ctx.delta_t(params.diffusive_time_unit)
    probs = _random_direction_probabilities(grid, ctx, speed, 'Diffusive')
    if probs.total >= 1.0:
        ctx.violation(
            f"Diffusive dispersal probability {probs.total:.3f} >= 1 in cell "
            f"{ctx.index} (cohort {cohort.cohort_id}); time step too long"
        )
        probs = _clamped_probabilities(probs)
    return _attempt(grid, ctx, probs, fg, index)


def responsive_dispersal(grid: 'ModelGrid', ctx: CellStepContext, cohort: Cohort,
                         fg: int, index: int) -> Optional[DispersalIntent]:
    """Starvation-driven, then density-driven, dispersal of mature cohorts.

    Starving cohorts (mass below adult mass) attempt to leave with a
    probability that rises linearly as the mass ratio falls from 1 to the
    starvation threshold, and always below it. If no starvation attempt
    was made, sparse cohorts (density below scaling/adult mass) attempt
    to leave. Both move at the speed of an adult.
    """
    params = ctx.config.dispersal
    speed = dispersal_speed(cohort.adult_mass, params.responsive_speed_scalar,
                            params.responsive_speed_exponent)
    speed *= ctx.delta_t(params.responsive_time_unit)

    def attempt() -> Optional[DispersalIntent]:
        probs = _random_direction_probabilities(grid, ctx, speed, 'Responsive')
        if probs.total > 1.0:
            probs = _clamped_probabilities(probs)
        return _attempt(grid, ctx, probs, fg, index)

    if cohort.individual_body_mass < cohort.adult_mass:
        ratio = cohort.individual_body_mass / cohort.adult_mass
        threshold = params.starvation_dispersal_mass_threshold
        if ratio < threshold:
            return attempt()
        if (1.0 - ratio) / (1.0 - threshold) > ctx.rng.random():
            return attempt()

    density = cohort.abundance / grid.cell_area(ctx.index)
    if density < params.density_threshold_scaling / cohort.adult_mass:
        return attempt()
    return None


def disperse_cohort(grid: 'ModelGrid', ctx: CellStepContext, fg: int,
                    index: int) -> Optional[DispersalIntent]:
    """Run the appropriate dispersal strategy for one cohort."""
    cohort = ctx.cohorts[fg][index]
    kind = choose_dispersal_kind(cohort, ctx)
    if kind is DispersalKind.ADVECTIVE:
        return advective_dispersal(grid, ctx, cohort, fg, index)
    elif kind is DispersalKind.RESPONSIVE:
        return responsive_dispersal(grid, ctx, cohort, fg, index)
    elif kind is DispersalKind.DIFFUSIVE:
        return diffusive_dispersal(grid, ctx, cohort, fg, index)
    raise ModelPreconditionError(f"Unhandled dispersal kind {kind}")


def disperse_cell(grid: 'ModelGrid', ctx: CellStepContext) -> int:
    """Evaluate dispersal for every cohort in a cell.

    Returns:
        Number of intents posted.
    """
    posted = 0
    for fg in sorted(ctx.cohorts):
        for index in range(len(ctx.cohorts[fg])):
            if disperse_cohort(grid, ctx, fg, index) is not None:
                posted += 1
    if posted:
        logger.debug("Cell %s t=%d: %d dispersal intents", ctx.index,
                     ctx.timestep, posted)
    return posted
