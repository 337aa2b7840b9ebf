"""Cross-source fusion of earthquake reports and tsunami alerts."""

from coastwatch.fusion.aggregator import Aggregator, are_similar, merge_group
from coastwatch.fusion.tsunami import TsunamiFusion

__all__ = ["Aggregator", "TsunamiFusion", "are_similar", "merge_group"]
