"""Model grid: cells, adjacency and deferred dispersal.

The grid is a regular latitude/longitude lattice. Cell (i, j) spans
[lat0 + i·Δlat, lat0 + (i+1)·Δlat) × [lon0 + j·Δlon, lon0 + (j+1)·Δlon).
Each cell holds its environment, its heterotroph cohorts (functional
group → list) and its autotroph stocks.

Adjacency covers the 8 compass directions. A cohort can only move into a
neighbour of the same realm. Longitude wraps around when the grid spans
the whole globe; latitude never wraps.

Cross-cell moves are message passing. Dispersal posts DispersalIntents to
a queue per destination cell while cells are processed (possibly
concurrently); apply_dispersal() drains every queue in a single thread
once all cells are done.

Core classes:
  - GridCell: one cell's environment, cohorts and stocks
  - ModelGrid: lattice geometry, neighbours, intent queues
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterator, List, Mapping, Optional, Tuple

from cohort_ecology.environment import CELL_AREA, REALM, CellEnvironment
from cohort_ecology.tracking import ProcessTracker
from cohort_ecology.types import (
    CellIndex,
    Cohort,
    Direction,
    DispersalIntent,
    Stock,
)
from cohort_ecology.utils import length_of_degree_latitude, length_of_degree_longitude

logger = logging.getLogger(__name__)

# Grids wider than this (degrees) are treated as wrapping in longitude
GLOBAL_LONGITUDE_SPAN = 359.9


# ═══════════════════════════════════════════════════════════════════════
# GRID CELL
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class GridCell:
    """Runtime state of one grid cell."""
    index: CellIndex
    latitude: float                 # southern edge (degrees)
    longitude: float                # western edge (degrees)
    environment: CellEnvironment
    cohorts: Dict[int, List[Cohort]] = field(default_factory=dict)
    stocks: Dict[int, List[Stock]] = field(default_factory=dict)

    def add_cohort(self, cohort: Cohort) -> None:
        self.cohorts.setdefault(cohort.functional_group, []).append(cohort)

    def add_stock(self, stock: Stock) -> None:
        self.stocks.setdefault(stock.functional_group, []).append(stock)

    def iter_cohorts(self) -> Iterator[Tuple[int, int, Cohort]]:
        """(functional_group, index, cohort) in group then list order."""
        for fg in sorted(self.cohorts):
            for i, cohort in enumerate(self.cohorts[fg]):
                yield fg, i, cohort

    @property
    def n_cohorts(self) -> int:
        return sum(len(lst) for lst in self.cohorts.values())

    def total_heterotroph_biomass(self) -> float:
        return sum(c.total_biomass for _, _, c in self.iter_cohorts())

    def total_autotroph_biomass(self) -> float:
        return sum(s.total_biomass for lst in self.stocks.values() for s in lst)


# ═══════════════════════════════════════════════════════════════════════
# MODEL GRID
# ═══════════════════════════════════════════════════════════════════════

class ModelGrid:
    """Regular lat/lon grid with same-realm 8-neighbour adjacency.

    Args:
        bottom_latitude: Southern edge of row 0 (degrees).
        left_longitude: Western edge of column 0 (degrees).
        n_lat: Number of rows.
        n_lon: Number of columns.
        lat_size: Row height (degrees).
        lon_size: Column width (degrees).
        environments: CellEnvironment per (lat_index, lon_index); every
            cell of the lattice must be present. A missing 'Cell Area'
            layer is filled from the cell's geodesic height × width.
        tracker: Diagnostics sink for dispersal events.
    """

    def __init__(self, bottom_latitude: float, left_longitude: float,
                 n_lat: int, n_lon: int, lat_size: float, lon_size: float,
                 environments: Mapping[CellIndex, CellEnvironment],
                 tracker: Optional[ProcessTracker] = None):
        if n_lat < 1 or n_lon < 1:
            raise ValueError(f"Grid must have at least one cell, got {n_lat}x{n_lon}")
        if lat_size <= 0 or lon_size <= 0:
            raise ValueError("Cell sizes must be positive")

        self.bottom_latitude = bottom_latitude
        self.left_longitude = left_longitude
        self.n_lat = n_lat
        self.n_lon = n_lon
        self.lat_size = lat_size
        self.lon_size = lon_size
        self.wraps_longitude = n_lon * lon_size > GLOBAL_LONGITUDE_SPAN
        self.tracker = tracker or ProcessTracker()

        # Cell extents depend only on latitude row
        self._heights_km: List[float] = []
        self._widths_km: List[float] = []
        for i in range(n_lat):
            mid = bottom_latitude + i * lat_size + lat_size / 2.0
            self._heights_km.append(length_of_degree_latitude(mid) * lat_size)
            self._widths_km.append(length_of_degree_longitude(mid) * lon_size)

        self._cells: Dict[CellIndex, GridCell] = {}
        for i in range(n_lat):
            for j in range(n_lon):
                try:
                    env = environments[(i, j)]
                except KeyError:
                    raise KeyError(f"No environment for cell ({i}, {j})") from None
                if not env.has(CELL_AREA):
                    env.set(CELL_AREA, self._heights_km[i] * self._widths_km[i])
                self._cells[(i, j)] = GridCell(
                    index=(i, j),
                    latitude=bottom_latitude + i * lat_size,
                    longitude=left_longitude + j * lon_size,
                    environment=env,
                )

        self._neighbors: Dict[CellIndex, Dict[Direction, CellIndex]] = {
            idx: self._find_neighbors(idx) for idx in self._cells
        }
        self._queues: Dict[CellIndex, Deque[DispersalIntent]] = {
            idx: deque() for idx in self._cells
        }

    # ── geometry ─────────────────────────────────────────────────────

    @property
    def n_cells(self) -> int:
        return len(self._cells)

    def cell(self, index: CellIndex) -> GridCell:
        return self._cells[index]

    def cell_indices(self) -> List[CellIndex]:
        """All cell indices in row-major order."""
        return sorted(self._cells)

    def cells(self) -> List[GridCell]:
        return [self._cells[idx] for idx in self.cell_indices()]

    def cell_height_km(self, index: CellIndex) -> float:
        return self._heights_km[index[0]]

    def cell_width_km(self, index: CellIndex) -> float:
        return self._widths_km[index[0]]

    def cell_area(self, index: CellIndex) -> float:
        """Cell area (km²) from the 'Cell Area' environment layer."""
        return self._cells[index].environment.cell_area

    def _find_neighbors(self, index: CellIndex) -> Dict[Direction, CellIndex]:
        i, j = index
        realm = self._cells[index].environment.get(REALM)
        found = {}
        for direction in Direction:
            di, dj = direction.offset
            ni, nj = i + di, j + dj
            if not 0 <= ni < self.n_lat:
                continue
            if self.wraps_longitude:
                nj %= self.n_lon
            elif not 0 <= nj < self.n_lon:
                continue
            if (ni, nj) == index:
                continue
            if self._cells[(ni, nj)].environment.get(REALM) != realm:
                continue
            found[direction] = (ni, nj)
        return found

    def neighbor(self, index: CellIndex, direction: Direction) -> Optional[CellIndex]:
        """Traversable neighbour in `direction`, or None."""
        return self._neighbors[index].get(direction)

    def neighbors(self, index: CellIndex) -> Dict[Direction, CellIndex]:
        return dict(self._neighbors[index])

    # ── dispersal intents ────────────────────────────────────────────

    def post_intent(self, intent: DispersalIntent) -> None:
        """Queue a move for the barrier. Safe to call from worker threads."""
        self._queues[intent.destination].append(intent)

    def pending_intents(self, destination: Optional[CellIndex] = None) -> List[DispersalIntent]:
        if destination is not None:
            return list(self._queues[destination])
        return [intent for idx in self.cell_indices() for intent in self._queues[idx]]

    def apply_dispersal(self, timestep: int = 0) -> int:
        """Move every queued cohort to its destination and clear the queues.

        Must be called from a single thread after all cells have finished
        posting intents. Intents are applied in (source, group, index)
        order so the result does not depend on thread scheduling.

        Returns:
            Number of cohorts moved.
        """
        intents = sorted(self.pending_intents(),
                         key=lambda it: (it.source, it.functional_group, it.cohort_index))
        removals: Dict[Tuple[CellIndex, int], List[int]] = defaultdict(list)

        for intent in intents:
            source = self._cells[intent.source]
            cohort = source.cohorts[intent.functional_group][intent.cohort_index]
            self._cells[intent.destination].add_cohort(cohort)
            removals[(intent.source, intent.functional_group)].append(intent.cohort_index)
            self.tracker.dispersal(timestep, cohort.cohort_id, intent.source,
                                   intent.destination, intent.exit_direction,
                                   intent.entry_direction)

        # Highest index first so earlier indices stay valid
        for (source, fg), indices in removals.items():
            cohorts = self._cells[source].cohorts[fg]
            for idx in sorted(set(indices), reverse=True):
                del cohorts[idx]

        for queue in self._queues.values():
            queue.clear()

        if intents:
            logger.debug("t=%d: moved %d cohorts between cells", timestep, len(intents))
        return len(intents)

    # ── summaries ────────────────────────────────────────────────────

    def total_cohorts(self) -> int:
        return sum(c.n_cohorts for c in self._cells.values())

    def summary(self) -> str:
        lines = [f"ModelGrid: {self.n_lat}x{self.n_lon} cells "
                 f"({self.lat_size}° x {self.lon_size}°), "
                 f"{self.total_cohorts()} cohorts"]
        for cell in self.cells():
            lines.append(
                f"  {cell.index}: realm={cell.environment.get(REALM):.0f} "
                f"cohorts={cell.n_cohorts} "
                f"autotroph={cell.total_autotroph_biomass():.3g} g"
            )
        return '\n'.join(lines)
