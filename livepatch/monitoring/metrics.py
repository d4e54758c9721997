import time
import logging
from typing import Dict, Any, List
from collections import defaultdict
import numpy as np

logger = logging.getLogger(__name__)


class MetricsTracker:
    """Timings and counters for the edit pipeline"""

    def __init__(self):
        self.metrics: Dict[str, List[float]] = defaultdict(list)
        self.errors: Dict[str, List[str]] = defaultdict(list)
        self.max_samples = 1000

    @staticmethod
    def time() -> float:
        return time.perf_counter()

    def record(self, name: str, value: float):
        """Record a sample for a metric"""
        samples = self.metrics[name]
        samples.append(float(value))
        if len(samples) > self.max_samples:
            del samples[0]

    def record_error(self, name: str, message: str):
        """Record an error occurrence"""
        self.errors[name].append(message)
        if len(self.errors[name]) > self.max_samples:
            del self.errors[name][0]

    def summary(self) -> Dict[str, Any]:
        """Count, mean and percentiles per metric, plus error counts"""
        result: Dict[str, Any] = {}
        for name, samples in self.metrics.items():
            if not samples:
                continue
            values = np.asarray(samples)
            result[name] = {
                "count": int(values.size),
                "mean": float(values.mean()),
                "p50": float(np.percentile(values, 50)),
                "p95": float(np.percentile(values, 95)),
            }
        result["errors"] = {name: len(messages) for name, messages in self.errors.items()}
        return result
