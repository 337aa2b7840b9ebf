"""Vessel persistence, AIS code tables and the enrichment job."""
