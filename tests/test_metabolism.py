"""Tests for cohort_ecology.metabolism — ectotherm and endotherm respiration."""

import math

import numpy as np
import pytest

from cohort_ecology.config import MetabolismSection, default_config
from cohort_ecology.context import CellStepContext
from cohort_ecology.environment import CELL_AREA, REALM, TEMPERATURE, CellEnvironment
from cohort_ecology.grid import GridCell
from cohort_ecology.ids import CohortIdAllocator
from cohort_ecology.metabolism import (
    KELVIN_OFFSET,
    ectotherm_metabolic_rate,
    endotherm_metabolic_rate,
    metabolise,
)
from cohort_ecology.tracking import RecordingTracker
from cohort_ecology.traits import FunctionalGroupTable
from cohort_ecology.types import (
    BIOMASS,
    RESPIRATORY_POOL,
    Cohort,
    DeltaAccumulator,
)


# ── Helpers ───────────────────────────────────────────────────────────

def _records(thermo='ectotherm', trophic='heterotroph'):
    return [{'definitions': {'nutrition source': 'herbivore', 'endo/ectotherm': thermo,
                             'heterotroph/autotroph': trophic}}]


def _make_ctx(records, temperature=30.0, overrides=None):
    env = CellEnvironment({REALM: 1, CELL_AREA: 100.0, TEMPERATURE: temperature})
    cell = GridCell(index=(0, 0), latitude=0.0, longitude=0.0, environment=env)
    return CellStepContext(cell=cell, traits=FunctionalGroupTable(records),
                           config=default_config(overrides),
                           rng=np.random.default_rng(0), timestep=0, month=0,
                           ids=CohortIdAllocator(), tracker=RecordingTracker())


def _cohort(mass=10.0, abundance=100.0, p_active=0.3):
    cohort = Cohort(functional_group=0, juvenile_mass=2.0, adult_mass=50.0,
                    individual_body_mass=mass, abundance=abundance,
                    birth_timestep=0, cohort_id=1)
    cohort.proportion_time_active = p_active
    return cohort


# ── Rate functions ────────────────────────────────────────────────────

class TestEctothermRate:
    def test_fully_active_is_field_rate(self):
        p = MetabolismSection()
        kelvin = 20.0 + KELVIN_OFFSET
        expected = (p.ecto_normalization_constant * 10.0 ** p.ecto_mass_exponent
                    * math.exp(-p.ecto_activation_energy / (p.boltzmann_constant * kelvin))
                    * p.energy_scalar)
        np.testing.assert_allclose(ectotherm_metabolic_rate(10.0, kelvin, 1.0, p), expected)

    def test_inactive_is_basal_rate(self):
        p = MetabolismSection()
        kelvin = 20.0 + KELVIN_OFFSET
        expected = (p.ecto_bmr_normalization_constant * 10.0 ** p.ecto_bmr_mass_exponent
                    * math.exp(-p.ecto_activation_energy / (p.boltzmann_constant * kelvin))
                    * p.energy_scalar)
        np.testing.assert_allclose(ectotherm_metabolic_rate(10.0, kelvin, 0.0, p), expected)

    def test_blend_is_between(self):
        p = MetabolismSection()
        kelvin = 293.0
        basal = ectotherm_metabolic_rate(10.0, kelvin, 0.0, p)
        field = ectotherm_metabolic_rate(10.0, kelvin, 1.0, p)
        half = ectotherm_metabolic_rate(10.0, kelvin, 0.5, p)
        np.testing.assert_allclose(half, 0.5 * (basal + field))

    def test_warmer_costs_more(self):
        p = MetabolismSection()
        assert (ectotherm_metabolic_rate(10.0, 303.0, 0.5, p)
                > ectotherm_metabolic_rate(10.0, 283.0, 0.5, p))

    def test_heavier_costs_more(self):
        p = MetabolismSection()
        assert (ectotherm_metabolic_rate(100.0, 293.0, 0.5, p)
                > ectotherm_metabolic_rate(10.0, 293.0, 0.5, p))


class TestEndothermRate:
    def test_fixed_body_temperature(self):
        p = MetabolismSection()
        kelvin = 37.0 + KELVIN_OFFSET
        expected = (p.endo_normalization_constant * 10.0 ** p.endo_mass_exponent
                    * math.exp(-p.endo_activation_energy / (p.boltzmann_constant * kelvin))
                    * p.energy_scalar)
        np.testing.assert_allclose(endotherm_metabolic_rate(10.0, p), expected)


# ── metabolise ────────────────────────────────────────────────────────

class TestMetabolise:
    def test_ectotherm_loss_scaled_to_step(self):
        ctx = _make_ctx(_records())
        cohort = _cohort()
        deltas = DeltaAccumulator()
        metabolise(cohort, ctx, deltas)

        rate = ectotherm_metabolic_rate(10.0, 30.0 + KELVIN_OFFSET, 0.3, ctx.config.metabolism)
        np.testing.assert_allclose(deltas.get(BIOMASS, 'metabolism'), -rate * 30.0)
        np.testing.assert_allclose(deltas.get(RESPIRATORY_POOL, 'metabolism'),
                                   rate * 30.0 * 100.0)

    def test_endotherm_ignores_ambient_temperature(self):
        cold = DeltaAccumulator()
        hot = DeltaAccumulator()
        metabolise(_cohort(), _make_ctx(_records('endotherm'), temperature=0.0), cold)
        metabolise(_cohort(), _make_ctx(_records('endotherm'), temperature=40.0), hot)
        assert cold.get(BIOMASS, 'metabolism') < 0.0
        assert cold.get(BIOMASS, 'metabolism') == hot.get(BIOMASS, 'metabolism')

    def test_loss_capped_at_available_mass(self):
        ctx = _make_ctx(_records(), overrides={'metabolism': {'ecto_normalization_constant': 1e30}})
        cohort = _cohort(mass=1e-3)
        deltas = DeltaAccumulator()
        deltas.set(BIOMASS, 'herbivory', 2e-3)
        metabolise(cohort, ctx, deltas)
        np.testing.assert_allclose(deltas.get(BIOMASS, 'metabolism'), -3e-3)
        np.testing.assert_allclose(deltas.get(RESPIRATORY_POOL, 'metabolism'), 3e-3 * 100.0)

    def test_autotroph_skipped(self):
        ctx = _make_ctx(_records(trophic='autotroph'))
        deltas = DeltaAccumulator()
        metabolise(_cohort(), ctx, deltas)
        assert deltas.get(BIOMASS, 'metabolism') == 0.0
        assert ctx.tracker.of_kind('metabolism') == []

    def test_reported_to_tracker(self):
        ctx = _make_ctx(_records())
        deltas = DeltaAccumulator()
        metabolise(_cohort(), ctx, deltas)
        events = ctx.tracker.of_kind('metabolism')
        assert len(events) == 1
        np.testing.assert_allclose(events[0].data['mass_lost'],
                                   -deltas.get(BIOMASS, 'metabolism'))

    def test_time_unit_conversion(self):
        per_day = DeltaAccumulator()
        per_month = DeltaAccumulator()
        metabolise(_cohort(), _make_ctx(_records()), per_day)
        metabolise(_cohort(), _make_ctx(_records(), overrides={
            'metabolism': {'time_unit': 'month'}}), per_month)
        np.testing.assert_allclose(per_day.get(BIOMASS, 'metabolism'),
                                   30.0 * per_month.get(BIOMASS, 'metabolism'))
