"""Tests for the regression deviation engine."""

from __future__ import annotations

import pytest

from gemeinden_analytics.analysis.regression import Observation, deviations, fit_line
from gemeinden_analytics.errors import DegenerateInputError, InsufficientDataError


def observations(xs, ys):
    return [Observation(entity_id=i, x=x, y=y) for i, (x, y) in enumerate(zip(xs, ys))]


class TestFitLine:
    def test_exact_line(self):
        fit = fit_line(observations([1, 2, 3, 4, 5], [2, 4, 6, 8, 10]))
        assert fit.slope == pytest.approx(2.0)
        assert fit.intercept == pytest.approx(0.0, abs=1e-12)
        assert fit.n == 5

    def test_noisy_line(self):
        fit = fit_line(observations([0, 1, 2, 3], [1, 3, 2, 4]))
        # x mean 1.5, y mean 2.5, Sxy 4, Sxx 5
        assert fit.slope == pytest.approx(0.8)
        assert fit.intercept == pytest.approx(1.3)

    def test_zero_x_variance(self):
        with pytest.raises(DegenerateInputError):
            fit_line(observations([3, 3, 3], [1, 2, 3]))

    def test_too_few_pairs(self):
        with pytest.raises(InsufficientDataError):
            fit_line(observations([1], [1]))


class TestDeviations:
    """Residuals y - (slope * x + intercept)."""

    def test_perfectly_linear_data_has_zero_deviation(self):
        xs = [0.5, 1.0, 2.0, 3.5, 7.0]
        results = deviations(observations(xs, [2 * x + 1 for x in xs]))
        assert len(results) == len(xs)
        for result in results:
            assert result.deviation == pytest.approx(0.0, abs=1e-9)

    def test_signs_and_order(self):
        results = deviations(observations([0, 1, 2, 3], [1, 3, 2, 4]))
        assert [r.entity_id for r in results] == [0, 1, 2, 3]
        assert results[0].predicted == pytest.approx(1.3)
        assert [r.deviation for r in results] == pytest.approx([-0.3, 0.9, -0.9, 0.3])
        assert sum(r.deviation for r in results) == pytest.approx(0.0, abs=1e-12)

    def test_invalid_pairs_are_skipped(self):
        pairs = observations([1, None, 2, 3, "4"], [2, 5, None, 6, "8"])
        results = deviations(pairs)
        assert [r.entity_id for r in results] == [0, 3, 4]
        assert all(r.deviation == pytest.approx(0.0, abs=1e-9) for r in results)

    def test_fewer_than_two_pairs(self):
        assert deviations(observations([1], [2])) == []
        assert deviations([]) == []

    def test_zero_x_variance_is_signalled(self):
        with pytest.raises(DegenerateInputError):
            deviations(observations([2, 2, 2], [1, 5, 9]))
