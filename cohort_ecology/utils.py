"""Utility functions for Cohort-Ecology.

General-purpose helpers: model calendar conversions, geodesic cell
lengths and the precondition-violation policy shared by the processes.
"""

from __future__ import annotations

import logging
import math

from cohort_ecology.types import ModelPreconditionError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# MODEL CALENDAR
# ═══════════════════════════════════════════════════════════════════════

DAYS_IN_YEAR = 360.0
MONTHS_IN_YEAR = 12
DAYS_IN_WEEK = 7.0

# Length of each supported unit in days (360-day model year)
TIME_UNIT_DAYS = {
    'year': DAYS_IN_YEAR,
    'month': DAYS_IN_YEAR / MONTHS_IN_YEAR,
    'bimonth': DAYS_IN_YEAR / (MONTHS_IN_YEAR * 2),
    'week': DAYS_IN_WEEK,
    'day': 1.0,
    'second': 1.0 / (24.0 * 60.0 * 60.0),
}


def convert_time_units(from_unit: str, to_unit: str) -> float:
    """Number of `to_unit` intervals in one `from_unit` interval.

    Process formulations are parameterised in their own time unit; the
    result of convert_time_units(model_step_unit, formulation_unit) is the
    `delta_t` that scales a per-formulation-unit rate to one model step.

    Args:
        from_unit: e.g. 'month' (case-insensitive).
        to_unit: e.g. 'day'.

    Returns:
        Conversion factor (e.g. 30.0 for month → day).

    Raises:
        ValueError: If either unit is not supported.
    """
    src = from_unit.lower()
    dst = to_unit.lower()
    if src not in TIME_UNIT_DAYS or dst not in TIME_UNIT_DAYS:
        raise ValueError(
            f"Unsupported time unit conversion '{from_unit}' -> '{to_unit}'. "
            f"Supported units: {sorted(TIME_UNIT_DAYS)}"
        )
    return TIME_UNIT_DAYS[src] / TIME_UNIT_DAYS[dst]


def current_month(timestep: int, time_step_unit: str) -> int:
    """Calendar month (0-11) in which model step `timestep` falls.

    Yearly steps always read month 0.

    Raises:
        ValueError: If the unit is not supported.
    """
    unit = time_step_unit.lower()
    if unit not in TIME_UNIT_DAYS:
        raise ValueError(
            f"Unsupported time step unit '{time_step_unit}'. "
            f"Supported units: {sorted(TIME_UNIT_DAYS)}"
        )
    if unit == 'year':
        return 0
    elapsed_days = timestep * TIME_UNIT_DAYS[unit]
    return int(math.floor(elapsed_days / TIME_UNIT_DAYS['month'])) % MONTHS_IN_YEAR


# ═══════════════════════════════════════════════════════════════════════
# GEODESY (WGS84 ellipsoid)
# ═══════════════════════════════════════════════════════════════════════

_EQUATORIAL_RADIUS_M = 6378137.0
_POLAR_RADIUS_M = 6356752.3142


def length_of_degree_latitude(latitude: float) -> float:
    """Length (km) of one degree of latitude at `latitude` (degrees).

    Uses the meridional radius of curvature M(φ) = (ab)² / (a²cos²φ + b²sin²φ)^1.5.
    """
    phi = math.radians(latitude)
    a, b = _EQUATORIAL_RADIUS_M, _POLAR_RADIUS_M
    temp = (a * math.cos(phi)) ** 2 + (b * math.sin(phi)) ** 2
    m_phi = (a * b) ** 2 / temp ** 1.5
    return math.pi / 180.0 * m_phi / 1000.0


def length_of_degree_longitude(latitude: float) -> float:
    """Length (km) of one degree of longitude at `latitude` (degrees).

    Uses the normal radius of curvature N(φ) = a² / sqrt(a²cos²φ + b²sin²φ).
    """
    phi = math.radians(latitude)
    a, b = _EQUATORIAL_RADIUS_M, _POLAR_RADIUS_M
    temp = (a * math.cos(phi)) ** 2 + (b * math.sin(phi)) ** 2
    n_phi = a ** 2 / math.sqrt(temp)
    return math.pi / 180.0 * math.cos(phi) * n_phi / 1000.0


# ═══════════════════════════════════════════════════════════════════════
# PRECONDITION POLICY
# ═══════════════════════════════════════════════════════════════════════

def precondition_violation(message: str, strict: bool = True) -> None:
    """Report a modelling-precondition violation.

    Strict mode aborts with ModelPreconditionError. Non-strict mode logs a
    warning and returns, leaving the caller to clamp the offending value.

    Raises:
        ModelPreconditionError: If strict.
    """
    if strict:
        raise ModelPreconditionError(message)
    logger.warning("Precondition violated, clamping: %s", message)
