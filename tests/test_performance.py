"""Unit tests for survival_explain.performance module."""
import pytest
import numpy as np

from survival_explain.explainer import explain
from survival_explain.metrics import compute_ibs
from survival_explain.performance import (
    ModelPerformance,
    compare_performance,
    model_performance,
)


class TestModelPerformance:
    """Tests for model_performance."""

    def test_curves_and_summaries(self, analytic_explainer):
        perf = model_performance(analytic_explainer)

        assert perf.label == "exponential"
        np.testing.assert_array_equal(perf.times, analytic_explainer.times)
        assert perf.brier_score.shape == (20,)
        assert perf.auc.shape == (20,)
        assert 0.0 < perf.integrated_brier_score < 0.25
        assert perf.c_index > 0.6
        assert set(perf.summary()) == {"integrated_brier_score", "integrated_auc", "c_index"}

    def test_ibs_matches_metric(self, analytic_explainer):
        perf = model_performance(analytic_explainer)
        survival = analytic_explainer.predict_survival()
        y = analytic_explainer.y

        assert perf.integrated_brier_score == pytest.approx(
            compute_ibs(analytic_explainer.times, y, y, survival)
        )

    def test_true_model_beats_constant_model(self, analytic_explainer, toy_data):
        """The data generating model has lower IBS than a covariate-free curve."""
        X, y = toy_data
        flat = explain(
            object(), X, y, times=analytic_explainer.times,
            predict_survival_function=lambda m, X, t: np.tile(np.exp(-t / 60.0), (len(X), 1)),
        )

        assert model_performance(analytic_explainer).integrated_brier_score < \
            model_performance(flat).integrated_brier_score

    def test_to_frame(self, analytic_explainer):
        frame = model_performance(analytic_explainer).to_frame()

        assert list(frame.columns) == ["label", "time", "brier_score", "auc"]
        assert len(frame) == 20

    def test_custom_times(self, analytic_explainer):
        times = analytic_explainer.times[[2, 5, 9]]
        perf = model_performance(analytic_explainer, times=times)

        assert perf.brier_score.shape == (3,)

    def test_single_time_rejected(self, analytic_explainer):
        with pytest.raises(ValueError, match="two time points"):
            model_performance(analytic_explainer, times=[analytic_explainer.times[3]])

    def test_times_outside_follow_up(self, analytic_explainer):
        max_time = float(analytic_explainer.y["time"].max())
        with pytest.raises(ValueError, match="follow-up"):
            model_performance(analytic_explainer, times=[1.0, max_time + 1.0])

    def test_real_pipeline(self, fitted_pipelines, veterans_Xy):
        X, y = veterans_Xy
        perf = model_performance(explain(fitted_pipelines["rsf"], X, y, n_times=15))

        assert np.isfinite(perf.brier_score).all()
        assert perf.c_index > 0.6


class TestComparePerformance:
    """Tests for compare_performance."""

    @staticmethod
    def _perf(label, ibs, cindex):
        times = np.array([1.0, 2.0])
        return ModelPerformance(
            label=label, times=times, brier_score=np.zeros(2), auc=np.zeros(2),
            integrated_brier_score=ibs, integrated_auc=0.7, c_index=cindex,
        )

    def test_ranking(self):
        summary = compare_performance([
            self._perf("cox_ph", 0.15, 0.70),
            self._perf("rsf", 0.12, 0.74),
            self._perf("weibull_aft", 0.15, 0.72),
        ])

        assert summary["label"].tolist() == ["rsf", "weibull_aft", "cox_ph"]
        assert summary["rank_ibs"].tolist() == [1.0, 2.0, 2.0]

    def test_empty(self):
        assert compare_performance([]).empty
