"""Signal-processing detectors used by sources that emit their own verdicts."""

from coastwatch.detectors.dart_anomaly import DartDetection, PressureReading, detect_anomaly

__all__ = ["DartDetection", "PressureReading", "detect_anomaly"]
