from sheetqa.infrastructure.monitoring.metrics import MetricsRecorder, NoOpMetricsRecorder, get_metrics_recorder

__all__ = ["MetricsRecorder", "NoOpMetricsRecorder", "get_metrics_recorder"]
