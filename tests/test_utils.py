"""Tests for cohort_ecology.utils — time units, geodesy and precondition policy."""

import logging

import numpy as np
import pytest

from cohort_ecology.types import ModelPreconditionError
from cohort_ecology.utils import (
    convert_time_units,
    current_month,
    length_of_degree_latitude,
    length_of_degree_longitude,
    precondition_violation,
)


class TestConvertTimeUnits:
    def test_month_to_day(self):
        assert convert_time_units('month', 'day') == pytest.approx(30.0)

    def test_year_to_month(self):
        assert convert_time_units('year', 'month') == pytest.approx(12.0)

    def test_day_to_month(self):
        assert convert_time_units('day', 'month') == pytest.approx(1.0 / 30.0)

    def test_identity(self):
        assert convert_time_units('week', 'week') == 1.0

    def test_case_insensitive(self):
        assert convert_time_units('Month', 'DAY') == pytest.approx(30.0)

    def test_unknown_unit_raises(self):
        with pytest.raises(ValueError, match="fortnight"):
            convert_time_units('fortnight', 'day')


class TestCurrentMonth:
    def test_monthly_steps_cycle(self):
        assert [current_month(t, 'month') for t in (0, 11, 12, 25)] == [0, 11, 0, 1]

    def test_daily_steps(self):
        assert current_month(29, 'day') == 0
        assert current_month(30, 'day') == 1
        assert current_month(45, 'day') == 1
        assert current_month(365, 'day') == 0

    def test_weekly_steps(self):
        # 30 days per month: weeks 0-4 fall in month 0, week 5 in month 1
        assert [current_month(t, 'week') for t in (0, 4, 5, 9)] == [0, 0, 1, 2]

    def test_yearly_steps_read_first_month(self):
        assert current_month(5, 'year') == 0

    def test_unknown_unit_raises(self):
        with pytest.raises(ValueError, match='fortnight'):
            current_month(3, 'fortnight')


class TestGeodesy:
    def test_latitude_degree_at_equator(self):
        np.testing.assert_allclose(length_of_degree_latitude(0.0), 110.574, rtol=1e-4)

    def test_longitude_degree_at_equator(self):
        np.testing.assert_allclose(length_of_degree_longitude(0.0), 111.319, rtol=1e-4)

    def test_longitude_degree_shrinks_poleward(self):
        lengths = [length_of_degree_longitude(lat) for lat in (0, 30, 60, 89)]
        assert all(np.diff(lengths) < 0)
        np.testing.assert_allclose(length_of_degree_longitude(60.0), 55.8, rtol=5e-3)

    def test_latitude_degree_grows_poleward(self):
        assert length_of_degree_latitude(60.0) > length_of_degree_latitude(0.0)

    def test_symmetric_about_equator(self):
        np.testing.assert_allclose(length_of_degree_longitude(-45.0),
                                   length_of_degree_longitude(45.0))


class TestPreconditionViolation:
    def test_strict_raises(self):
        with pytest.raises(ModelPreconditionError, match="too coarse"):
            precondition_violation("time step too coarse", strict=True)

    def test_lenient_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger='cohort_ecology.utils'):
            precondition_violation("time step too coarse", strict=False)
        assert "clamping" in caplog.text
        assert "time step too coarse" in caplog.text
