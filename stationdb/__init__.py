"""stationdb: pooled backend access and schema auto-sync for station management."""

__version__ = "0.1.0"
