"""Authorization data for the lock: credential cache, log queue and sync routine."""
from smartlock.access.data_source import DataSource, DataSourceState
from smartlock.access.engine import AccessDecision, SyncEngine

__all__ = ["AccessDecision", "DataSource", "DataSourceState", "SyncEngine"]
