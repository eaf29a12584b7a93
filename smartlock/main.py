"""
SmartLock Service — local control surface for a card/PIN lock

The reader hardware (NFC reader, keypad, display, door actuator) talks to
this process over localhost. The service provides:

  1. Card and PIN checks against the local credential list (offline-capable)
  2. Card enrollment on an existing PIN
  3. An audit log queue delivered to the directory server in batches
  4. Network link events that start and stop the background sync routine
  5. A long-poll feed of data-source changes for the display

Design principle: if the directory server is unreachable the lock keeps
working on the last-known user list (data source CACHE). With no list at
all it denies everything (data source ERROR).

                ┌────────────────────────────────┐
                │   Directory Server              │
                │   SmartLockRESTService          │
                └─────────────┬──────────────────┘
                              │  (routine / retry period)
                ┌─────────────┴──────────────────┐
                │   SmartLock (This Service)      │
                │   :8001                         │
                │                                 │
                │   ┌────────────┐ ┌───────────┐  │
                │   │ Credential │ │  Log      │  │
                │   │ Store      │ │  Queue    │  │
                │   └────────────┘ └───────────┘  │
                │                                 │
                │   ┌──────────────────────────┐  │
                │   │ Sync Scheduler (thread)   │  │
                │   └──────────────────────────┘  │
                └─────────────┬──────────────────┘
                              │
                   Reader / keypad / display adapters
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Query

from smartlock.access.cache_store import CacheStore
from smartlock.access.data_source import DataSource
from smartlock.access.engine import AccessDecision, SyncEngine
from smartlock.access.network import NetworkLink
from smartlock.access.sync_client import DirectorySyncClient
from smartlock.config import Settings, get_settings
from smartlock.database import build_engine, build_session_factory, init_db
from smartlock.schemas import (
    AccessResponse,
    BindCardRequest,
    CardAccessRequest,
    DataSourceEvent,
    LogCreate,
    LogEntry,
    NetworkUpRequest,
    PinAccessRequest,
    StatusResponse,
)

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# Dependencies (initialized at startup)
# ──────────────────────────────────────────────

engine: Optional[SyncEngine] = None


def build_sync_engine(settings: Settings) -> SyncEngine:
    """Wire the cache, directory client and network link into a SyncEngine."""
    db_engine = build_engine(settings.cache_database_url)
    init_db(db_engine)
    cache = CacheStore(build_session_factory(db_engine))
    return SyncEngine(
        cache=cache,
        client=DirectorySyncClient.from_settings(settings),
        success_interval=settings.routine_period_seconds,
        retry_interval=settings.retry_period_seconds,
        network=NetworkLink(address=settings.lock_ip),
    )


def _announce_data_source(source: DataSource) -> None:
    # Display adapters follow changes through GET /data-source/watch
    logger.info(f"[SMARTLOCK] Data source is now {source.name}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    global engine

    settings = get_settings()
    logger.info(f"[SMARTLOCK] Starting: lock={settings.lock_id} server={settings.server_ip}:{settings.server_port}")

    engine = build_sync_engine(settings)
    engine.data_source.subscribe(_announce_data_source)
    engine.initialize()

    if settings.network_up_on_start:
        engine.network_up(settings.lock_ip)

    logger.info("[SMARTLOCK] Ready")
    yield

    # Deliver what we can before going away; the rest stays cached
    engine.shutdown(flush=True)
    engine = None
    logger.info("[SMARTLOCK] Shutdown complete")


app = FastAPI(
    title="SmartLock",
    description="Offline-capable card/PIN access control with directory sync",
    version="1.0.0",
    lifespan=lifespan,
)


def _engine() -> SyncEngine:
    if engine is None or not engine.initialized:
        raise HTTPException(status_code=503, detail="Lock data not initialized")
    return engine


def _access_response(lock: SyncEngine, decision: AccessDecision) -> AccessResponse:
    return AccessResponse(
        authorized=decision.authorized,
        verdict=decision.verdict,
        reason=decision.reason,
        card_enrollment_required=decision.card_enrollment_required,
        data_source=lock.data_source.current.name,
        lock_id=get_settings().lock_id,
    )


# ──────────────────────────────────────────────
# Reader endpoints
# ──────────────────────────────────────────────

@app.post("/access/card", response_model=AccessResponse)
def access_card(req: CardAccessRequest):
    """A card was presented to the NFC reader."""
    lock = _engine()
    return _access_response(lock, lock.handle_card(req.card_id))


@app.post("/access/pin", response_model=AccessResponse)
def access_pin(req: PinAccessRequest):
    """A PIN was entered on the keypad."""
    lock = _engine()
    return _access_response(lock, lock.handle_pin(req.pin))


@app.post("/access/bind-card")
def bind_card(req: BindCardRequest):
    """Enroll a card on an existing PIN (PIN-only users)."""
    lock = _engine()
    bound = lock.bind_card(req.pin, req.card_id)
    if not bound:
        raise HTTPException(status_code=404, detail="No user with this pin")
    return {"bound": True, "card_id": req.card_id}


@app.post("/logs")
def add_log(req: LogCreate):
    """Queue an event from a hardware adapter (door sensor, display, ...)."""
    lock = _engine()
    entry = LogEntry.create(req.type, req.text, when=lock.clock.now(), pin=req.pin, card_id=req.card_id)
    lock.add_log(entry, urgent=req.urgent)
    return {"queued": entry.id, "pending": lock.logs.size}


# ──────────────────────────────────────────────
# Network + sync endpoints
# ──────────────────────────────────────────────

@app.post("/network/up")
def network_up(req: NetworkUpRequest):
    lock = _engine()
    lock.network_up(req.address)
    return {"network_up": True, "address": lock.network.address}


@app.post("/network/down")
def network_down():
    lock = _engine()
    lock.network_down()
    return {"network_up": False, "data_source": lock.data_source.current.name}


@app.post("/sync")
def trigger_sync():
    """Manually trigger a sync cycle (for ops/debugging)."""
    lock = _engine()
    if not lock.scheduler.is_running:
        return {"status": "idle", "reason": "network is down"}
    lock.request_sync()
    return {"status": "scheduled"}


@app.get("/status", response_model=StatusResponse)
def status():
    """Lock health: data source, cache sizes, last sync."""
    lock = _engine()
    return StatusResponse(lock_id=get_settings().lock_id, **lock.status())


@app.get("/data-source/watch", response_model=DataSourceEvent)
def watch_data_source(
    since: int = Query(-1, description="Last revision the caller has seen"),
    timeout: float = Query(25.0, ge=0, le=60),
):
    """
    Long poll for data-source changes (display adapters).

    Returns at once if the revision is already past ``since``; otherwise
    blocks until the next transition or until ``timeout`` seconds pass.
    """
    lock = _engine()
    source, revision = lock.data_source.wait_for_change(since, timeout)
    return DataSourceEvent(data_source=source.name, revision=revision, changed=revision > since)


@app.get("/health")
def health():
    return {
        "status": "healthy",
        "lock_id": get_settings().lock_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
