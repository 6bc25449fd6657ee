"""Activity: proportion of a time step a cohort can be active.

Endotherms are active for a fixed, group-specific proportion of time.
Terrestrial ectotherms are further limited to the part of the day in which
ambient temperature lies between their critical thermal limits. The
thermal limits follow from the cell's temperature climate:

  WT   = a_WT  × σ_T + b_WT           (warming tolerance)
  TSM  = a_TSM × σ_T + b_TSM          (thermal safety margin)
  Topt = T_annual + TSM,  CTmax = T_annual + WT
  σ_P  = (CTmax − Topt) / 12,  CTmin = Topt − 4σ_P

Daily temperature is treated as a sinusoid with amplitude DTR/2 around
the monthly mean; the fraction of the cycle above (below) a limit has a
closed form in arcsin.

Marine ectotherms are not thermally limited (suitability 1).

References:
  - Deutsch et al. (2008) PNAS 105:6668-6672
  - Harfoot et al. (2014) PLoS Biol 12:e1001841
"""

from __future__ import annotations

import math

from cohort_ecology.config import ActivitySection
from cohort_ecology.context import CellStepContext
from cohort_ecology.environment import (
    ANNUAL_TEMPERATURE,
    DIURNAL_TEMPERATURE_RANGE,
    SD_TEMPERATURE,
    TEMPERATURE,
    CellEnvironment,
)
from cohort_ecology.traits import TIME_ACTIVE
from cohort_ecology.types import (
    Cohort,
    ModelPreconditionError,
    Realm,
    Thermoregulation,
    TrophicMode,
)


def thermal_limits(sd_temperature: float, annual_temperature: float,
                   params: ActivitySection):
    """Critical thermal minimum and maximum for a cell climate.

    Returns:
        (ct_min, ct_max) in °C.
    """
    warming_tolerance = (params.warming_tolerance_slope * sd_temperature
                         + params.warming_tolerance_intercept)
    safety_margin = params.tsm_slope * sd_temperature + params.tsm_intercept
    t_opt = safety_margin + annual_temperature
    ct_max = warming_tolerance + annual_temperature
    performance_sd = (ct_max - t_opt) / 12.0
    ct_min = t_opt - 4.0 * performance_sd
    return ct_min, ct_max


def _arcsin_argument(limit: float, ambient: float, dtr: float) -> float:
    """2(limit − T)/DTR, clamped to ±1 when the limit is outside the cycle."""
    if limit - (ambient + 0.5 * dtr) > 0.0:
        return 1.0
    if limit - (ambient - 0.5 * dtr) < 0.0:
        return -1.0
    return 2.0 * (limit - ambient) / dtr


def proportion_day_suitable(ambient: float, dtr: float,
                            ct_min: float, ct_max: float) -> float:
    """Fraction of a sinusoidal day strictly between ct_min and ct_max.

    Args:
        ambient: Monthly mean temperature (°C).
        dtr: Diurnal temperature range (°C). A non-positive range is a
            constant temperature: suitability is 1 inside the limits, else 0.
        ct_min: Critical thermal minimum (°C).
        ct_max: Critical thermal maximum (°C).

    Returns:
        Suitability in [0, 1].
    """
    if dtr <= 0.0:
        return 1.0 if ct_min < ambient < ct_max else 0.0

    p_over = (math.pi / 2.0 - math.asin(_arcsin_argument(ct_max, ambient, dtr))) / math.pi
    p_below = 1.0 - (math.pi / 2.0 - math.asin(_arcsin_argument(ct_min, ambient, dtr))) / math.pi
    return max(0.0, 1.0 - (p_over + p_below))


def terrestrial_suitability(env: CellEnvironment, month: int,
                            params: ActivitySection) -> float:
    ct_min, ct_max = thermal_limits(env.get(SD_TEMPERATURE),
                                    env.get(ANNUAL_TEMPERATURE), params)
    return proportion_day_suitable(env.get(TEMPERATURE, month),
                                   env.get(DIURNAL_TEMPERATURE_RANGE, month),
                                   ct_min, ct_max)


def marine_suitability(env: CellEnvironment, month: int,
                       params: ActivitySection) -> float:
    # No thermal-tolerance model for the ocean yet
    return 1.0


def assign_proportion_time_active(cohort: Cohort, ctx: CellStepContext) -> None:
    """Set `cohort.proportion_time_active` for this time step.

    Autotrophs are skipped.

    Raises:
        ModelPreconditionError: If the thermoregulation trait is not
            endotherm or ectotherm.
    """
    fg = cohort.functional_group
    traits = ctx.traits
    if traits.trophic_mode(fg) is TrophicMode.AUTOTROPH:
        return

    configured = traits.property_of(fg, TIME_ACTIVE)
    mode = traits.thermoregulation(fg)
    if mode is Thermoregulation.ENDOTHERM:
        cohort.proportion_time_active = configured
    elif mode is Thermoregulation.ECTOTHERM:
        env = ctx.environment
        params = ctx.config.activity
        if env.realm is Realm.TERRESTRIAL:
            suitability = terrestrial_suitability(env, ctx.month, params)
        else:
            suitability = marine_suitability(env, ctx.month, params)
        cohort.proportion_time_active = suitability * configured
    else:
        raise ModelPreconditionError(f"Unhandled thermoregulation {mode}")
