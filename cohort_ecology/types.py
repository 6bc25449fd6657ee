"""Core data types for Cohort-Ecology.

This module is the SINGLE SOURCE OF TRUTH for:
  - Realm, NutritionSource, Thermoregulation, TrophicMode,
    ReproductiveStrategy and Direction enumerations
  - Cohort and Stock records
  - DeltaAccumulator: per-cohort, per-timestep ledger of process effects
  - DispersalIntent: a deferred cross-cell move
  - ModelPreconditionError

All modules import these types from here. No other module defines
cohort fields or delta categories.

Delta protocol:
  Processes never change a cohort's abundance, body mass or reproductive
  mass directly. They write signed contributions into the acting cohort's
  DeltaAccumulator; each process reads the running totals of earlier
  contributions before computing its own. The accumulator is consolidated
  once, after the whole stack has run for that cohort.

  Two documented exceptions mutate shared state immediately: predation
  removes eaten prey individuals from prey cohorts, and herbivory removes
  eaten biomass from autotroph stocks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Iterator, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════
# EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════

class ModelPreconditionError(RuntimeError):
    """Parameters or time step are incompatible with a process formula.

    Raised for dispersal probabilities ≥ 1, displacements of a cell width
    or more per sub-step, and unrecognised categorical trait values.
    """


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class Realm(IntEnum):
    """Cell realm, as coded in the 'Realm' environment layer."""
    TERRESTRIAL = 1
    MARINE      = 2


class NutritionSource(Enum):
    HERBIVORE = "herbivore"
    CARNIVORE = "carnivore"
    OMNIVORE  = "omnivore"


class Thermoregulation(Enum):
    ENDOTHERM = "endotherm"
    ECTOTHERM = "ectotherm"


class TrophicMode(Enum):
    HETEROTROPH = "heterotroph"
    AUTOTROPH   = "autotroph"


class ReproductiveStrategy(Enum):
    ITEROPARITY = "iteroparity"   # repeated breeding; reproductive mass only
    SEMELPARITY = "semelparity"   # single breeding; also spends adult mass


class Direction(IntEnum):
    """Compass directions for dispersal, clockwise from north."""
    N  = 0
    NE = 1
    E  = 2
    SE = 3
    S  = 4
    SW = 5
    W  = 6
    NW = 7

    @property
    def opposite(self) -> 'Direction':
        return Direction((self + 4) % 8)

    @property
    def offset(self) -> Tuple[int, int]:
        """(Δlat_index, Δlon_index) for one step in this direction."""
        return _DIRECTION_OFFSETS[self]


_DIRECTION_OFFSETS = {
    Direction.N:  (1, 0),
    Direction.NE: (1, 1),
    Direction.E:  (0, 1),
    Direction.SE: (-1, 1),
    Direction.S:  (-1, 0),
    Direction.SW: (-1, -1),
    Direction.W:  (0, -1),
    Direction.NW: (1, -1),
}

# Categorical trait values with special meaning
PLANKTONIC = "planktonic"     # 'mobility' trait
ALL_SPECIAL = "allspecial"    # 'diet' trait: marine filter feeders


# ═══════════════════════════════════════════════════════════════════════
# COHORTS AND STOCKS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class Cohort:
    """A group of identical individuals of one functional group.

    Abundance is a real-valued count. Masses are per individual, in grams.
    `maturity_timestep` stays None until reproductive mass is first
    assigned. Identity semantics (eq=False): two cohorts with equal fields
    are still different cohorts.
    """
    functional_group: int
    juvenile_mass: float
    adult_mass: float
    individual_body_mass: float
    abundance: float
    birth_timestep: int
    cohort_id: int
    log_optimal_prey_body_size_ratio: float = 0.0
    proportion_time_active: float = 0.0
    trophic_index: float = 0.0
    individual_reproductive_mass: float = 0.0
    maximum_achieved_mass: Optional[float] = None
    maturity_timestep: Optional[int] = None
    merged: bool = False

    def __post_init__(self):
        if self.maximum_achieved_mass is None:
            self.maximum_achieved_mass = self.juvenile_mass

    @property
    def is_mature(self) -> bool:
        return self.maturity_timestep is not None

    @property
    def total_biomass(self) -> float:
        """Population biomass including reproductive potential (g)."""
        return (self.individual_body_mass
                + self.individual_reproductive_mass) * self.abundance


@dataclass(eq=False)
class Stock:
    """An autotroph biomass pool in a grid cell (g)."""
    functional_group: int
    total_biomass: float


# ═══════════════════════════════════════════════════════════════════════
# DELTA ACCUMULATOR
# ═══════════════════════════════════════════════════════════════════════

BIOMASS = 'biomass'
ABUNDANCE = 'abundance'
REPRODUCTIVE_BIOMASS = 'reproductivebiomass'
ORGANIC_POOL = 'organicpool'
RESPIRATORY_POOL = 'respiratoryCO2pool'

DELTA_CATEGORIES = (
    BIOMASS, ABUNDANCE, REPRODUCTIVE_BIOMASS, ORGANIC_POOL, RESPIRATORY_POOL,
)

# Process slots present from the start, so totals and lookups never miss
_DEFAULT_PROCESSES = {
    BIOMASS: ('herbivory', 'predation', 'metabolism', 'reproduction'),
    ABUNDANCE: ('mortality',),
    REPRODUCTIVE_BIOMASS: ('reproduction',),
    ORGANIC_POOL: ('mortality',),
    RESPIRATORY_POOL: ('metabolism',),
}


class DeltaAccumulator:
    """Signed per-process contributions for one acting cohort.

    Maps category → process name → value. Biomass categories are per
    individual (g); abundance is individuals; the two pools are cell
    totals (g).
    """

    def __init__(self):
        self._deltas: Dict[str, Dict[str, float]] = {}
        self.reset()

    def reset(self) -> None:
        """Zero every slot (reused across acting cohorts)."""
        self._deltas = {
            category: {name: 0.0 for name in _DEFAULT_PROCESSES[category]}
            for category in DELTA_CATEGORIES
        }

    def _category(self, category: str) -> Dict[str, float]:
        try:
            return self._deltas[category]
        except KeyError:
            raise KeyError(
                f"Unknown delta category '{category}'. "
                f"Valid: {DELTA_CATEGORIES}"
            ) from None

    def get(self, category: str, process: str) -> float:
        return self._category(category).get(process, 0.0)

    def set(self, category: str, process: str, value: float) -> None:
        self._category(category)[process] = float(value)

    def add(self, category: str, process: str, value: float) -> None:
        slot = self._category(category)
        slot[process] = slot.get(process, 0.0) + float(value)

    def total(self, category: str) -> float:
        """Current sum of all contributions in a category."""
        return float(sum(self._category(category).values()))

    def items(self, category: str) -> Iterator[Tuple[str, float]]:
        return iter(list(self._category(category).items()))

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        return {c: dict(v) for c, v in self._deltas.items()}


# ═══════════════════════════════════════════════════════════════════════
# DISPERSAL INTENTS
# ═══════════════════════════════════════════════════════════════════════

CellIndex = Tuple[int, int]   # (lat_index, lon_index)


@dataclass(frozen=True)
class DispersalIntent:
    """A request to move one cohort, drained at the end-of-step barrier.

    `cohort_index` is the position in the source cell's functional-group
    list at the time dispersal ran; lists are not modified between the
    dispersal phase and the barrier.
    """
    source: CellIndex
    functional_group: int
    cohort_index: int
    destination: CellIndex
    exit_direction: Optional[Direction]
    entry_direction: Optional[Direction]


@dataclass
class DirectionRecord:
    """Exit/entry bookkeeping across dispersal sub-steps.

    The exit direction is written once, on the first attempt to leave;
    the entry direction is overwritten on every attempt.
    """
    exit_direction: Optional[Direction] = None
    entry_direction: Optional[Direction] = None

    def record(self, exit_dir: Direction) -> None:
        if self.exit_direction is None:
            self.exit_direction = exit_dir
        self.entry_direction = exit_dir.opposite
