"""
External feed adapters.

Polled hazard sources (earthquakes and tsunami alerts) are exported here.
The vessel stream connector and the Marinesia client live in
aisstream_connector and marinesia_client.
"""

from coastwatch.connectors.dart_buoy_source import DartBuoySource
from coastwatch.connectors.emsc_source import EmscSource
from coastwatch.connectors.geonet_source import GeoNetSource
from coastwatch.connectors.iris_source import IrisSource
from coastwatch.connectors.jma_source import JmaSource
from coastwatch.connectors.ptwc_source import PtwcSource
from coastwatch.connectors.seismic_inference_source import SeismicInferenceSource
from coastwatch.connectors.usgs_source import UsgsSource

__all__ = [
    "DartBuoySource",
    "EmscSource",
    "GeoNetSource",
    "IrisSource",
    "JmaSource",
    "PtwcSource",
    "SeismicInferenceSource",
    "UsgsSource",
]
