import pytest

from livepatch.monitoring.metrics import MetricsTracker


class TestMetricsTracker:
    def test_summary(self):
        tracker = MetricsTracker()
        for value in range(1, 101):
            tracker.record("patch_time", value)
        tracker.record_error("COMPONENT_NOT_FOUND", "Component 'X' not found")

        summary = tracker.summary()

        assert summary["patch_time"]["count"] == 100
        assert summary["patch_time"]["mean"] == pytest.approx(50.5)
        assert summary["patch_time"]["p50"] == pytest.approx(50.5)
        assert summary["errors"] == {"COMPONENT_NOT_FOUND": 1}

    def test_samples_are_bounded(self):
        tracker = MetricsTracker()
        tracker.max_samples = 3
        for value in range(5):
            tracker.record("fanout_size", value)

        assert tracker.metrics["fanout_size"] == [2.0, 3.0, 4.0]
