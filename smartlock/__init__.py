"""SmartLock — offline-capable card/PIN access control with directory sync."""
from smartlock.access import AccessDecision, DataSource, SyncEngine

__all__ = ["AccessDecision", "DataSource", "SyncEngine"]
__version__ = "1.0.0"
