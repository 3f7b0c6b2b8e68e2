"""Training callbacks for transfer_classifier."""

from transfer_classifier.callbacks.metrics import (
    CancellationCallback,
    CollectingMetricsSink,
    LoguruMetricsSink,
    MetricsSink,
    MetricsSinkCallback,
)
from transfer_classifier.callbacks.model_info import ModelInfoCallback
from transfer_classifier.callbacks.statistics import DatasetStatisticsCallback

__all__ = [
    "CancellationCallback",
    "CollectingMetricsSink",
    "DatasetStatisticsCallback",
    "LoguruMetricsSink",
    "MetricsSink",
    "MetricsSinkCallback",
    "ModelInfoCallback",
]
