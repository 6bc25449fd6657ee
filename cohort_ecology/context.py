"""Per-cell, per-step execution context shared by the process stack."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List

import numpy as np

from cohort_ecology.config import EcologyConfig
from cohort_ecology.environment import CellEnvironment
from cohort_ecology.ids import CohortIdAllocator
from cohort_ecology.tracking import ProcessTracker
from cohort_ecology.traits import FunctionalGroupTable
from cohort_ecology.types import CellIndex, Cohort, Stock
from cohort_ecology.utils import convert_time_units, precondition_violation

if TYPE_CHECKING:
    from cohort_ecology.grid import GridCell


@dataclass
class CellStepContext:
    """Everything a process needs while one cell is being updated.

    Each context owns its cell's RNG stream; contexts are never shared
    between worker threads.
    """
    cell: 'GridCell'
    traits: FunctionalGroupTable
    config: EcologyConfig
    rng: np.random.Generator
    timestep: int
    month: int
    ids: CohortIdAllocator
    tracker: ProcessTracker
    initial_counts: Dict[int, int] = field(default_factory=dict)

    def snapshot_counts(self) -> None:
        """Record how many cohorts each group holds before any process runs."""
        self.initial_counts = {fg: len(lst) for fg, lst in self.cell.cohorts.items()}

    def cohorts_at_start(self, fg: int) -> List[Cohort]:
        """Cohorts of group `fg` that existed when the cell step began.

        Offspring appended during the step are excluded.
        """
        cohorts = self.cell.cohorts.get(fg, [])
        return cohorts[:self.initial_counts.get(fg, len(cohorts))]

    @property
    def index(self) -> CellIndex:
        return self.cell.index

    @property
    def environment(self) -> CellEnvironment:
        return self.cell.environment

    @property
    def cohorts(self) -> Dict[int, List[Cohort]]:
        return self.cell.cohorts

    @property
    def stocks(self) -> Dict[int, List[Stock]]:
        return self.cell.stocks

    def violation(self, message: str) -> None:
        """Report a modelling-precondition violation per the strictness setting."""
        precondition_violation(message, self.config.simulation.strict_preconditions)

    def delta_t(self, time_unit: str) -> float:
        """Formulation time units per model time step."""
        return convert_time_units(self.config.simulation.time_step_unit, time_unit)
