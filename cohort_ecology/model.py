"""Ecology step driver: within-cell processes, dispersal, consolidation.

One model time step:

  Phase 1 (per cell, cells in parallel):
    for every cohort present at the start of the step, in random order:
      Activity → Eating → Metabolism → Mortality → Reproduction,
      then its deltas are applied immediately
    extinct cohorts are removed

  Phase 2 (per cell, cells in parallel):
    every cohort evaluates dispersal and may post an intent

  Barrier (single thread):
    queued moves are applied and the queues cleared

Cells share no mutable state during a phase except the cohort ID
counter, the diagnostics tracker and the dispersal queues, all of which
are thread-safe. Each cell draws from its own RNG stream, so serial and
parallel runs with the same seed produce the same ecology.

References:
  - Harfoot et al. (2014) PLoS Biol 12:e1001841
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

import numpy as np

from cohort_ecology.activity import assign_proportion_time_active
from cohort_ecology.config import EcologyConfig, default_config
from cohort_ecology.context import CellStepContext
from cohort_ecology.dispersal import disperse_cell
from cohort_ecology.eating import eat
from cohort_ecology.environment import CellEnvironment
from cohort_ecology.grid import GridCell, ModelGrid
from cohort_ecology.ids import CohortIdAllocator
from cohort_ecology.metabolism import metabolise
from cohort_ecology.mortality import apply_mortality
from cohort_ecology.perf import PerfMonitor
from cohort_ecology.reproduction import reproduce
from cohort_ecology.rng import (
    create_rng_hierarchy,
    get_cell_rng,
    restore_rng_state,
    rng_state_snapshot,
)
from cohort_ecology.tracking import ProcessTracker
from cohort_ecology.traits import FunctionalGroupTable
from cohort_ecology.types import (
    ABUNDANCE,
    BIOMASS,
    ORGANIC_POOL,
    REPRODUCTIVE_BIOMASS,
    RESPIRATORY_POOL,
    CellIndex,
    Cohort,
    DeltaAccumulator,
    ModelPreconditionError,
)
from cohort_ecology.utils import current_month

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ═══════════════════════════════════════════════════════════════════════
# DELTA CONSOLIDATION
# ═══════════════════════════════════════════════════════════════════════

def apply_deltas(cohort: Cohort, deltas: DeltaAccumulator,
                 env: CellEnvironment, ctx: CellStepContext) -> None:
    """Apply one acting cohort's accumulated deltas to cohort and cell.

    Raises:
        ModelPreconditionError: If abundance would become negative.
    """
    abundance = cohort.abundance + deltas.total(ABUNDANCE)
    if abundance < 0.0:
        raise ModelPreconditionError(
            f"Cohort {cohort.cohort_id}: abundance would become negative "
            f"({abundance:.6g})"
        )
    cohort.abundance = abundance

    if cohort.abundance == 0.0:
        cohort.individual_body_mass = 0.0
        cohort.individual_reproductive_mass = 0.0
    else:
        cohort.individual_body_mass += deltas.total(BIOMASS)
        cohort.individual_reproductive_mass += deltas.total(REPRODUCTIVE_BIOMASS)
    cohort.maximum_achieved_mass = max(cohort.maximum_achieved_mass,
                                       cohort.individual_body_mass)

    env.organic_pool += deltas.total(ORGANIC_POOL)
    env.respiratory_pool += deltas.total(RESPIRATORY_POOL)

    growth = (deltas.get(BIOMASS, 'predation') + deltas.get(BIOMASS, 'herbivory')
              + deltas.get(BIOMASS, 'metabolism'))
    ctx.tracker.growth(ctx.index, ctx.timestep, cohort.cohort_id, growth,
                       cohort.abundance)


# ═══════════════════════════════════════════════════════════════════════
# WITHIN-CELL ECOLOGY
# ═══════════════════════════════════════════════════════════════════════

def _activity(cohort: Cohort, ctx: CellStepContext, deltas: DeltaAccumulator) -> None:
    assign_proportion_time_active(cohort, ctx)


class CohortEcology:
    """Runs the within-cell process stack over one cell's cohorts.

    The process order can be replaced, e.g. to switch processes off in
    tests; each callable takes (cohort, ctx, deltas).
    """

    DEFAULT_PROCESSES = (
        _activity,
        eat,
        metabolise,
        apply_mortality,
        reproduce,
    )

    def __init__(self, processes: Optional[List[Callable]] = None):
        self.processes = list(processes) if processes is not None else list(self.DEFAULT_PROCESSES)

    def acting_order(self, ctx: CellStepContext) -> List[tuple]:
        """(functional_group, index) of every cohort present at step start."""
        pairs = [(fg, i) for fg in sorted(ctx.initial_counts)
                 for i in range(ctx.initial_counts[fg])]
        if ctx.config.simulation.randomize_cohort_order and len(pairs) > 1:
            order = ctx.rng.permutation(len(pairs))
            pairs = [pairs[k] for k in order]
        return pairs

    def run_cell(self, ctx: CellStepContext) -> int:
        """Advance every live cohort in the cell by one step.

        Returns:
            Number of cohorts that acted.
        """
        ctx.snapshot_counts()
        threshold = ctx.config.simulation.extinction_threshold
        deltas = DeltaAccumulator()
        acted = 0

        for fg, idx in self.acting_order(ctx):
            cohort = ctx.cohorts[fg][idx]
            if cohort.abundance <= threshold:
                continue
            deltas.reset()
            for process in self.processes:
                process(cohort, ctx, deltas)
            apply_deltas(cohort, deltas, ctx.environment, ctx)
            acted += 1
        return acted


def run_extinction(cell: GridCell, threshold: float,
                   tracker: ProcessTracker, timestep: int) -> int:
    """Remove cohorts at or below the extinction threshold or with no mass.

    Returns:
        Number of cohorts removed.
    """
    removed = 0
    for fg in sorted(cell.cohorts):
        survivors = []
        for cohort in cell.cohorts[fg]:
            if cohort.abundance <= threshold or cohort.individual_body_mass == 0.0:
                tracker.extinction(cell.index, timestep, cohort.cohort_id,
                                   cohort.abundance, cohort.individual_body_mass)
                removed += 1
            else:
                survivors.append(cohort)
        cell.cohorts[fg] = survivors
    return removed


# ═══════════════════════════════════════════════════════════════════════
# MODEL DRIVER
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class StepSummary:
    """Counts from one model time step."""
    timestep: int
    productions: int = 0      # offspring cohorts created
    extinctions: int = 0      # cohorts removed
    dispersals: int = 0       # cohorts moved between cells
    n_cohorts: int = 0        # cohorts alive after the step


class EcologyModel:
    """Owns the grid, trait table and config, and advances time steps.

    Args:
        grid: Populated ModelGrid.
        traits: Functional-group trait table.
        config: EcologyConfig; defaults if None.
        tracker: Diagnostics sink; a no-op tracker if None. Also attached
            to the grid for dispersal events.
        perf: Optional PerfMonitor for phase timings.
        ids: Cohort ID allocator; starts after the largest ID on the grid
            if None.
    """

    def __init__(self, grid: ModelGrid, traits: FunctionalGroupTable,
                 config: Optional[EcologyConfig] = None,
                 tracker: Optional[ProcessTracker] = None,
                 perf: Optional[PerfMonitor] = None,
                 ids: Optional[CohortIdAllocator] = None):
        self.grid = grid
        self.traits = traits
        self.config = config if config is not None else default_config()
        self.tracker = tracker if tracker is not None else ProcessTracker()
        self.grid.tracker = self.tracker
        self.perf = perf if perf is not None else PerfMonitor(enabled=False)
        if ids is None:
            existing = [c.cohort_id for cell in grid.cells()
                        for _, _, c in cell.iter_cohorts()]
            ids = CohortIdAllocator(start=max(existing) + 1 if existing else 0)
        self.ids = ids
        self.ecology = CohortEcology()

        self._cell_indices = grid.cell_indices()
        self.rngs = create_rng_hierarchy(self.config.simulation.seed,
                                         len(self._cell_indices))
        self._cell_rngs: Dict[CellIndex, np.random.Generator] = {
            idx: get_cell_rng(self.rngs, k) for k, idx in enumerate(self._cell_indices)
        }

    def _context(self, index: CellIndex, timestep: int) -> CellStepContext:
        return CellStepContext(
            cell=self.grid.cell(index),
            traits=self.traits,
            config=self.config,
            rng=self._cell_rngs[index],
            timestep=timestep,
            month=current_month(timestep, self.config.simulation.time_step_unit),
            ids=self.ids,
            tracker=self.tracker,
        )

    def rng_state(self) -> Dict[str, dict]:
        """Checkpoint every RNG stream (global and per cell)."""
        return rng_state_snapshot(self.rngs)

    def restore_rng_state(self, states: Dict[str, dict]) -> None:
        """Rewind the RNG streams to a `rng_state()` checkpoint."""
        restore_rng_state(self.rngs, states)

    def _map_cells(self, fn: Callable[[CellIndex], T]) -> List[T]:
        workers = self.config.simulation.parallel_workers
        if workers <= 1 or len(self._cell_indices) <= 1:
            return [fn(idx) for idx in self._cell_indices]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() re-raises the first worker exception here
            return list(pool.map(fn, self._cell_indices))

    def _ecology_phase(self, index: CellIndex, timestep: int) -> Tuple[int, int]:
        ctx = self._context(index, timestep)
        before = ctx.cell.n_cohorts
        self.ecology.run_cell(ctx)
        produced = ctx.cell.n_cohorts - before
        removed = run_extinction(ctx.cell, self.config.simulation.extinction_threshold,
                                 self.tracker, timestep)
        return produced, removed

    def _dispersal_phase(self, index: CellIndex, timestep: int) -> int:
        ctx = self._context(index, timestep)
        return disperse_cell(self.grid, ctx)

    def step(self, timestep: int) -> StepSummary:
        """Advance the whole grid by one time step."""
        summary = StepSummary(timestep=timestep)

        with self.perf.track("ecology"):
            results = self._map_cells(lambda idx: self._ecology_phase(idx, timestep))
        for produced, removed in results:
            summary.productions += produced
            summary.extinctions += removed

        with self.perf.track("dispersal"):
            self._map_cells(lambda idx: self._dispersal_phase(idx, timestep))
        with self.perf.track("dispersal_barrier"):
            summary.dispersals = self.grid.apply_dispersal(timestep)

        summary.n_cohorts = self.grid.total_cohorts()
        logger.debug("t=%d: %d new, %d extinct, %d moved, %d cohorts",
                     timestep, summary.productions, summary.extinctions,
                     summary.dispersals, summary.n_cohorts)
        return summary

    def run(self, n_steps: int, start: int = 0) -> List[StepSummary]:
        """Run `n_steps` consecutive steps starting at timestep `start`."""
        if n_steps < 0:
            raise ValueError(f"n_steps must be non-negative, got {n_steps}")
        self.perf.start()
        summaries = [self.step(t) for t in range(start, start + n_steps)]
        self.perf.stop()
        if summaries:
            logger.info("Ran %d steps: %d cohorts remain, %d produced, %d extinct",
                        n_steps, summaries[-1].n_cohorts,
                        sum(s.productions for s in summaries),
                        sum(s.extinctions for s in summaries))
        return summaries
