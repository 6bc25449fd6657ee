"""Environmental forcing accessor.

Each grid cell carries a mapping from named variable to a 12-element
monthly array. Static variables (realm, cell area, annual temperature
statistics) are stored broadcast across all twelve months, so every
variable is read the same way: `env.get(name, month)`.

The process engine only reads layers. Two cell-level carbon pools
(organic matter and respiratory CO2) are written, and only during
end-of-cohort consolidation.

Variables consumed by the processes:
  Temperature, DiurnalTemperatureRange (°C, monthly)
  SDTemperature, AnnualTemperature     (°C, static)
  Realm                                (1 = terrestrial, 2 = marine)
  Cell Area                            (km²)
  Breeding Season                      (1.0 in breeding months, else 0.0)
  uVel, vVel                           (m/s, ocean surface currents)
  NPP, Missing Value
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Union

import numpy as np

from cohort_ecology.types import ModelPreconditionError, Realm


# ═══════════════════════════════════════════════════════════════════════
# VARIABLE NAMES
# ═══════════════════════════════════════════════════════════════════════

TEMPERATURE = "Temperature"
DIURNAL_TEMPERATURE_RANGE = "DiurnalTemperatureRange"
SD_TEMPERATURE = "SDTemperature"
ANNUAL_TEMPERATURE = "AnnualTemperature"
REALM = "Realm"
CELL_AREA = "Cell Area"
BREEDING_SEASON = "Breeding Season"
NPP = "NPP"
U_VELOCITY = "uVel"
V_VELOCITY = "vVel"
MISSING_VALUE = "Missing Value"

N_MONTHS = 12
DEFAULT_MISSING_VALUE = -9999.0

LayerValue = Union[float, Sequence[float], np.ndarray]


def _as_monthly(name: str, values: LayerValue) -> np.ndarray:
    arr = np.atleast_1d(np.asarray(values, dtype=np.float64))
    if arr.ndim != 1 or arr.size not in (1, N_MONTHS):
        raise ValueError(
            f"Environment layer '{name}' must be a scalar or have "
            f"{N_MONTHS} monthly values, got shape {np.shape(values)}"
        )
    if arr.size == 1:
        arr = np.full(N_MONTHS, arr[0])
    return arr.copy()


# ═══════════════════════════════════════════════════════════════════════
# CELL ENVIRONMENT
# ═══════════════════════════════════════════════════════════════════════

class CellEnvironment:
    """Monthly environmental layers and carbon pools for one grid cell."""

    def __init__(self, layers: Optional[Mapping[str, LayerValue]] = None,
                 organic_pool: float = 0.0,
                 respiratory_pool: float = 0.0):
        self._layers: Dict[str, np.ndarray] = {}
        for name, values in (layers or {}).items():
            self.set(name, values)
        if MISSING_VALUE not in self._layers:
            self.set(MISSING_VALUE, DEFAULT_MISSING_VALUE)
        self.organic_pool = float(organic_pool)
        self.respiratory_pool = float(respiratory_pool)

    def get(self, name: str, month: int = 0) -> float:
        """Value of a layer in a month (0-11).

        Raises:
            KeyError: If the layer is absent.
        """
        try:
            layer = self._layers[name]
        except KeyError:
            raise KeyError(
                f"Environment layer '{name}' not found. "
                f"Available: {sorted(self._layers)}"
            ) from None
        return float(layer[month % N_MONTHS])

    def has(self, name: str) -> bool:
        return name in self._layers

    def set(self, name: str, values: LayerValue) -> None:
        """Replace a layer (initialisation or scenario perturbation)."""
        self._layers[name] = _as_monthly(name, values)

    def is_missing(self, name: str, month: int = 0) -> bool:
        return (not self.has(name)
                or self.get(name, month) == self.get(MISSING_VALUE))

    @property
    def realm(self) -> Realm:
        code = self.get(REALM)
        if code == float(Realm.TERRESTRIAL):
            return Realm.TERRESTRIAL
        if code == float(Realm.MARINE):
            return Realm.MARINE
        raise ModelPreconditionError(
            f"Cell realm code {code} is neither terrestrial (1) nor marine (2)"
        )

    @property
    def cell_area(self) -> float:
        """Cell area (km²)."""
        return self.get(CELL_AREA)

    def layer_names(self):
        return sorted(self._layers)


# ═══════════════════════════════════════════════════════════════════════
# FORCING HELPERS
# ═══════════════════════════════════════════════════════════════════════

def monthly_sinusoid(mean: float, amplitude: float,
                     peak_month: int = 6) -> np.ndarray:
    """Monthly values of a sinusoidal annual cycle.

    X(m) = mean + A × cos(2π × (m − m_peak) / 12)

    Args:
        mean: Annual mean.
        amplitude: Half-range of the annual cycle.
        peak_month: 0-indexed month of the maximum (default 6 = July).

    Returns:
        (12,) array.
    """
    months = np.arange(N_MONTHS)
    return mean + amplitude * np.cos(2.0 * np.pi * (months - peak_month) / N_MONTHS)


def breeding_months(months: Sequence[int]) -> np.ndarray:
    """Breeding-season layer with 1.0 in the given 0-indexed months."""
    flags = np.zeros(N_MONTHS)
    for m in months:
        if not 0 <= m < N_MONTHS:
            raise ValueError(f"month must be in [0, 11], got {m}")
        flags[m] = 1.0
    return flags
