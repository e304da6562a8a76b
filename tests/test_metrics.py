"""Unit tests for survival_explain.metrics module.

Tests survival-specific metrics including C-index, Brier score, IBS, and
time-dependent AUC, plus the loss functions used by variable importance.
"""
import pytest
import numpy as np
from scipy import integrate
from survival_explain.metrics import (
    compute_brier_curve,
    compute_cindex,
    compute_ibs,
    compute_time_dependent_auc,
    get_loss_function,
    loss_integrated_brier_score,
    loss_one_minus_cindex,
)


@pytest.fixture
def simple_survival_data():
    """Create simple survival data for testing metrics.

    Twenty records with times 1..20, every third one censored. Risk falls
    with time, so the ordering is perfect.

    Returns:
        Tuple of (y, risk_scores, surv_pred, times)
    """
    time = np.arange(1.0, 21.0)
    event = np.array([i % 3 != 2 for i in range(20)])
    y = np.empty(20, dtype=[("event", bool), ("time", float)])
    y["event"] = event
    y["time"] = time

    risk_scores = 21.0 - time
    times = np.array([3.0, 8.0, 12.0, 16.0])
    # Exponential survival with rate growing in risk
    surv_pred = np.exp(-np.outer(risk_scores / 100.0, times))

    return y, risk_scores, surv_pred, times


class TestComputeCindex:
    """Tests for compute_cindex function."""

    def test_perfect_discrimination(self, simple_survival_data):
        """Risk ordering matching survival ordering gives 1.0."""
        y, risk_scores, _, _ = simple_survival_data

        cindex = compute_cindex(y, risk_scores)

        assert cindex == pytest.approx(1.0)
        assert isinstance(cindex, float)

    def test_reversed_discrimination(self, simple_survival_data):
        """Reversed risk ordering gives 0.0."""
        y, risk_scores, _, _ = simple_survival_data

        assert compute_cindex(y, -risk_scores) == pytest.approx(0.0)

    def test_constant_risk(self, simple_survival_data):
        """Ties count as half concordant."""
        y, _, _, _ = simple_survival_data

        assert compute_cindex(y, np.ones(len(y))) == pytest.approx(0.5)


class TestBrierAndIBS:
    """Tests for Brier score curve and integrated Brier score."""

    def test_brier_curve_shape(self, simple_survival_data):
        y, _, surv_pred, times = simple_survival_data

        scores = compute_brier_curve(times, y, y, surv_pred)

        assert scores.shape == (len(times),)
        assert np.all((scores >= 0) & (scores <= 1))

    def test_ibs_range(self, simple_survival_data):
        y, _, surv_pred, times = simple_survival_data

        ibs = compute_ibs(times, y, y, surv_pred)

        assert isinstance(ibs, float)
        assert 0.0 <= ibs <= 1.0

    def test_ibs_is_normalized_integral(self, simple_survival_data):
        """IBS equals the trapezoidal integral of the curve over the range."""
        y, _, surv_pred, times = simple_survival_data

        scores = compute_brier_curve(times, y, y, surv_pred)
        expected = integrate.trapezoid(scores, times) / (times[-1] - times[0])

        assert compute_ibs(times, y, y, surv_pred) == pytest.approx(expected)

    def test_perfect_predictions_beat_constant(self, simple_survival_data):
        """A curve that drops exactly at each event time scores better than 0.5 everywhere."""
        y, _, _, times = simple_survival_data
        perfect = (y["time"][:, None] > times[None, :]).astype(float)
        constant = np.full_like(perfect, 0.5)

        assert compute_ibs(times, y, y, perfect) < compute_ibs(times, y, y, constant)


class TestTimeDependentAUC:
    """Tests for compute_time_dependent_auc function."""

    def test_perfect_ordering(self, simple_survival_data):
        y, risk_scores, _, times = simple_survival_data

        aucs, mean_auc = compute_time_dependent_auc(y, y, times, risk_scores)

        assert aucs.shape == (len(times),)
        np.testing.assert_allclose(aucs, 1.0)
        assert mean_auc == pytest.approx(1.0)

    def test_time_dependent_risk(self, simple_survival_data):
        """1 - S(t) is accepted as a (n, n_times) risk."""
        y, _, surv_pred, times = simple_survival_data

        aucs, mean_auc = compute_time_dependent_auc(y, y, times, 1.0 - surv_pred)

        np.testing.assert_allclose(aucs, 1.0)
        assert isinstance(mean_auc, float)


class TestLossFunctions:
    """Tests for variable importance loss functions."""

    def test_ibs_loss(self, simple_survival_data):
        y, _, surv_pred, times = simple_survival_data
        assert loss_integrated_brier_score(y, surv_pred, times) == pytest.approx(
            compute_ibs(times, y, y, surv_pred)
        )

    def test_one_minus_cindex_with_risk(self, simple_survival_data):
        y, risk_scores, surv_pred, times = simple_survival_data
        assert loss_one_minus_cindex(y, surv_pred, times, risk_scores) == pytest.approx(0.0)

    def test_one_minus_cindex_falls_back_to_survival(self, simple_survival_data):
        """Without risk scores the summed cumulative hazard is used."""
        y, _, surv_pred, times = simple_survival_data
        assert loss_one_minus_cindex(y, surv_pred, times) == pytest.approx(0.0)

    def test_get_by_name(self):
        name, fn = get_loss_function("one_minus_cindex")
        assert name == "one_minus_cindex"
        assert fn is loss_one_minus_cindex

    def test_get_callable(self):
        def my_loss(y, surv, times, risk):
            return 0.0

        name, fn = get_loss_function(my_loss)
        assert name == "my_loss"
        assert fn is my_loss

    def test_unknown_loss(self):
        with pytest.raises(ValueError, match="Unknown loss"):
            get_loss_function("log_loss")
