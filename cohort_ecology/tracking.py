"""Process diagnostics sink.

Processes report what they did through a ProcessTracker. The base class
ignores every call, so running without diagnostics needs no special
casing. RecordingTracker keeps the events in memory for analysis and
tests; it is safe to share across worker threads.
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cohort_ecology.types import CellIndex, Direction


class ProcessTracker:
    """No-op diagnostics sink. Subclass and override the hooks you need."""

    def eating(self, cell: CellIndex, timestep: int, cohort_id: int,
               functional_group: int, biomass_eaten: float,
               trophic_index: float) -> None:
        pass

    def predation_mortality(self, cell: CellIndex, timestep: int,
                            predator_id: int, prey_id: int,
                            individuals_eaten: float,
                            prey_body_mass: float) -> None:
        pass

    def metabolism(self, cell: CellIndex, timestep: int, cohort_id: int,
                   mass_lost: float, abundance: float) -> None:
        pass

    def mortality(self, cell: CellIndex, timestep: int, cohort_id: int,
                  individuals_died: float, rates: Dict[str, float]) -> None:
        pass

    def maturity(self, cell: CellIndex, timestep: int, cohort_id: int,
                 birth_timestep: int, juvenile_mass: float,
                 adult_mass: float) -> None:
        pass

    def new_cohort(self, cell: CellIndex, timestep: int, parent_id: int,
                   offspring_id: int, abundance: float,
                   juvenile_mass: float, adult_mass: float) -> None:
        pass

    def growth(self, cell: CellIndex, timestep: int, cohort_id: int,
               mass_change: float, abundance: float) -> None:
        pass

    def extinction(self, cell: CellIndex, timestep: int, cohort_id: int,
                   abundance: float, body_mass: float) -> None:
        pass

    def dispersal(self, timestep: int, cohort_id: int, source: CellIndex,
                  destination: CellIndex,
                  exit_direction: Optional[Direction],
                  entry_direction: Optional[Direction]) -> None:
        pass


@dataclass
class TrackerEvent:
    kind: str
    timestep: int
    cell: Optional[CellIndex]
    data: Dict[str, Any] = field(default_factory=dict)


class RecordingTracker(ProcessTracker):
    """Tracker that appends every call to `events`."""

    def __init__(self):
        self.events: List[TrackerEvent] = []
        self._lock = threading.Lock()

    def _add(self, kind: str, timestep: int, cell: Optional[CellIndex],
             **data) -> None:
        with self._lock:
            self.events.append(TrackerEvent(kind, timestep, cell, data))

    def eating(self, cell, timestep, cohort_id, functional_group,
               biomass_eaten, trophic_index):
        self._add('eating', timestep, cell, cohort_id=cohort_id,
                  functional_group=functional_group,
                  biomass_eaten=biomass_eaten, trophic_index=trophic_index)

    def predation_mortality(self, cell, timestep, predator_id, prey_id,
                            individuals_eaten, prey_body_mass):
        self._add('predation_mortality', timestep, cell,
                  predator_id=predator_id, prey_id=prey_id,
                  individuals_eaten=individuals_eaten,
                  prey_body_mass=prey_body_mass)

    def metabolism(self, cell, timestep, cohort_id, mass_lost, abundance):
        self._add('metabolism', timestep, cell, cohort_id=cohort_id,
                  mass_lost=mass_lost, abundance=abundance)

    def mortality(self, cell, timestep, cohort_id, individuals_died, rates):
        self._add('mortality', timestep, cell, cohort_id=cohort_id,
                  individuals_died=individuals_died, rates=dict(rates))

    def maturity(self, cell, timestep, cohort_id, birth_timestep,
                 juvenile_mass, adult_mass):
        self._add('maturity', timestep, cell, cohort_id=cohort_id,
                  birth_timestep=birth_timestep,
                  juvenile_mass=juvenile_mass, adult_mass=adult_mass)

    def new_cohort(self, cell, timestep, parent_id, offspring_id, abundance,
                   juvenile_mass, adult_mass):
        self._add('new_cohort', timestep, cell, parent_id=parent_id,
                  offspring_id=offspring_id, abundance=abundance,
                  juvenile_mass=juvenile_mass, adult_mass=adult_mass)

    def growth(self, cell, timestep, cohort_id, mass_change, abundance):
        self._add('growth', timestep, cell, cohort_id=cohort_id,
                  mass_change=mass_change, abundance=abundance)

    def extinction(self, cell, timestep, cohort_id, abundance, body_mass):
        self._add('extinction', timestep, cell, cohort_id=cohort_id,
                  abundance=abundance, body_mass=body_mass)

    def dispersal(self, timestep, cohort_id, source, destination,
                  exit_direction, entry_direction):
        self._add('dispersal', timestep, source, cohort_id=cohort_id,
                  destination=destination, exit_direction=exit_direction,
                  entry_direction=entry_direction)

    def of_kind(self, kind: str) -> List[TrackerEvent]:
        with self._lock:
            return [e for e in self.events if e.kind == kind]

    def counts(self) -> Dict[str, int]:
        """Number of events per kind."""
        with self._lock:
            return dict(Counter(e.kind for e in self.events))

    def clear(self) -> None:
        with self._lock:
            self.events.clear()
