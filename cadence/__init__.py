"""cadence - recurring activity templates materialized into dated instances."""

__version__ = "0.1.0"
