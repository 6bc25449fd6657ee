"""Functional-group trait table.

A functional group is described by categorical definitions (nutrition
source, thermoregulation, mobility, diet, realm, reproductive strategy)
and numeric biological properties (assimilation efficiencies, mass
bounds, proportion of time active). The table is read-only once built.

Trait names and categorical values are matched case-insensitively and
stored lowercase.

YAML layout accepted by `load_functional_groups_yaml`:

    functional_groups:
      - definitions:
          nutrition source: herbivore
          endo/ectotherm: ectotherm
          heterotroph/autotroph: heterotroph
          realm: terrestrial
          reproductive strategy: iteroparity
          mobility: mobile
        properties:
          herbivory assimilation: 0.5
          minimum mass: 0.4
          maximum mass: 150000
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Type, TypeVar, Union

import yaml

from cohort_ecology.types import (
    ALL_SPECIAL,
    PLANKTONIC,
    ModelPreconditionError,
    NutritionSource,
    ReproductiveStrategy,
    Thermoregulation,
    TrophicMode,
)


# ═══════════════════════════════════════════════════════════════════════
# TRAIT AND PROPERTY NAMES
# ═══════════════════════════════════════════════════════════════════════

NUTRITION_SOURCE = "nutrition source"
THERMOREGULATION = "endo/ectotherm"
TROPHIC_MODE = "heterotroph/autotroph"
MOBILITY = "mobility"
DIET = "diet"
REALM = "realm"
REPRODUCTIVE_STRATEGY = "reproductive strategy"

TIME_ACTIVE = "proportion suitable time active"
HERBIVORY_ASSIMILATION = "herbivory assimilation"
CARNIVORY_ASSIMILATION = "carnivory assimilation"
MINIMUM_MASS = "minimum mass"
MAXIMUM_MASS = "maximum mass"

E = TypeVar('E', NutritionSource, Thermoregulation, TrophicMode,
            ReproductiveStrategy)


def _norm(text: str) -> str:
    return str(text).strip().lower()


# ═══════════════════════════════════════════════════════════════════════
# TABLE
# ═══════════════════════════════════════════════════════════════════════

class FunctionalGroupTable:
    """Lookup of categorical traits and numeric properties by group index.

    Args:
        records: One mapping per functional group, in index order, each
            with optional 'definitions' and 'properties' sub-mappings.
    """

    def __init__(self, records: Sequence[Mapping]):
        self._definitions: List[Dict[str, str]] = []
        self._properties: List[Dict[str, float]] = []
        for record in records:
            definitions = record.get('definitions') or {}
            properties = record.get('properties') or {}
            self._definitions.append(
                {_norm(k): _norm(v) for k, v in definitions.items()}
            )
            self._properties.append(
                {_norm(k): float(v) for k, v in properties.items()}
            )
            min_mass = self._properties[-1].get(MINIMUM_MASS)
            if min_mass is not None and min_mass <= 0:
                raise ValueError(
                    f"Functional group {len(self._properties) - 1}: "
                    f"'{MINIMUM_MASS}' must be positive, got {min_mass}"
                )

    def __len__(self) -> int:
        return len(self._definitions)

    def _check_index(self, fg: int) -> None:
        if not 0 <= fg < len(self):
            raise IndexError(
                f"Functional group {fg} out of range (table has {len(self)})"
            )

    def trait_of(self, fg: int, name: str) -> str:
        """Categorical value of a trait (lowercase).

        Raises:
            KeyError: If the group has no such trait.
        """
        self._check_index(fg)
        try:
            return self._definitions[fg][_norm(name)]
        except KeyError:
            raise KeyError(
                f"Functional group {fg} has no trait '{name}'"
            ) from None

    def property_of(self, fg: int, name: str) -> float:
        """Numeric value of a biological property.

        Raises:
            KeyError: If the group has no such property.
        """
        self._check_index(fg)
        try:
            return self._properties[fg][_norm(name)]
        except KeyError:
            raise KeyError(
                f"Functional group {fg} has no property '{name}'"
            ) from None

    def has_trait(self, fg: int, name: str) -> bool:
        self._check_index(fg)
        return _norm(name) in self._definitions[fg]

    def indices_with(self, trait: str, value: str) -> List[int]:
        """Indices of groups whose trait equals `value`."""
        key, wanted = _norm(trait), _norm(value)
        return [i for i, d in enumerate(self._definitions)
                if d.get(key) == wanted]

    # ── typed accessors ──────────────────────────────────────────────

    def _parse(self, fg: int, trait: str, enum_cls: Type[E]) -> E:
        value = self.trait_of(fg, trait)
        try:
            return enum_cls(value)
        except ValueError:
            raise ModelPreconditionError(
                f"Functional group {fg}: unrecognised {trait} '{value}'"
            ) from None

    def nutrition_source(self, fg: int) -> NutritionSource:
        return self._parse(fg, NUTRITION_SOURCE, NutritionSource)

    def thermoregulation(self, fg: int) -> Thermoregulation:
        return self._parse(fg, THERMOREGULATION, Thermoregulation)

    def trophic_mode(self, fg: int) -> TrophicMode:
        return self._parse(fg, TROPHIC_MODE, TrophicMode)

    def reproductive_strategy(self, fg: int) -> ReproductiveStrategy:
        return self._parse(fg, REPRODUCTIVE_STRATEGY, ReproductiveStrategy)

    def is_planktonic(self, fg: int) -> bool:
        return (self.has_trait(fg, MOBILITY)
                and self.trait_of(fg, MOBILITY) == PLANKTONIC)

    def is_filter_feeder(self, fg: int) -> bool:
        """True for the 'allspecial' diet: planktivorous marine groups."""
        return self.has_trait(fg, DIET) and self.trait_of(fg, DIET) == ALL_SPECIAL

    def heterotroph_indices(self) -> List[int]:
        return self.indices_with(TROPHIC_MODE, TrophicMode.HETEROTROPH.value)

    def autotroph_indices(self) -> List[int]:
        return self.indices_with(TROPHIC_MODE, TrophicMode.AUTOTROPH.value)


def load_functional_groups_yaml(path: Union[str, Path]) -> FunctionalGroupTable:
    """Build a FunctionalGroupTable from a YAML file.

    The file holds either a list of records or a mapping with a
    'functional_groups' list.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document has no list of records.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Functional group file not found: {path}")
    with open(path) as f:
        data = yaml.safe_load(f)
    if isinstance(data, dict):
        data = data.get('functional_groups')
    if not isinstance(data, list):
        raise ValueError(
            f"{path}: expected a list of functional groups or a "
            f"'functional_groups' key"
        )
    return FunctionalGroupTable(data)
