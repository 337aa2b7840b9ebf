"""CoastWatch: seismic, tsunami and vessel telemetry ingestion."""

__version__ = "0.1.0"
