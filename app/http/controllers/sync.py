"""
Sync trigger routes: background/scheduler runs, per-entity admin runs, history and status
"""
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.auth import SyncCaller, get_current_user, get_sync_caller
from app.config import settings
from app.database import get_db
from app.http.requests import HealthResponse, SyncTriggerRequest, SyncTriggerResponse
from app.models import SyncTrigger, User
from app.services.exceptions import CredentialNotFound, IntegrationInactive, SyncAlreadyRunning
from app.services.sync_engine import SyncEngine, validate_operations

logger = logging.getLogger(__name__)
router = APIRouter()


def get_sync_engine(db: Session = Depends(get_db)) -> SyncEngine:
    return SyncEngine(db)


def _health() -> dict:
    return {
        "success": True,
        "message": "Background sync service is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _require_store(user: User) -> str:
    if not user.store_id:
        raise HTTPException(status_code=404, detail="Store not found")
    return user.store_id


@router.get("/health", response_model=HealthResponse)
async def sync_health():
    """Liveness probe. No auth, no side effects."""
    return _health()


@router.options("/background", response_model=HealthResponse)
async def background_sync_health():
    return _health()


@router.post("/background", response_model=SyncTriggerResponse)
async def trigger_background_sync(
    body: Optional[SyncTriggerRequest] = None,
    caller: SyncCaller = Depends(get_sync_caller),
    engine: SyncEngine = Depends(get_sync_engine),
):
    """
    Run a sync and wait for it. The scheduler syncs every active store (or body.storeId);
    an admin always syncs their own store.
    """
    started = time.monotonic()
    body = body or SyncTriggerRequest()

    if caller.is_scheduler:
        store_id = body.storeId
        trigger = SyncTrigger.SCHEDULER.value
    else:
        store_id = _require_store(caller.user)
        if body.storeId and body.storeId != store_id:
            raise HTTPException(status_code=403, detail="Cannot sync another store")
        trigger = SyncTrigger.ADMIN.value

    try:
        if store_id:
            summary = await engine.sync_store(store_id, operations=body.operations, trigger=trigger)
            message = f"Sync completed for store {store_id}"
        else:
            summary = await engine.run_full_sync(operations=body.operations, trigger=trigger)
            message = "Background sync completed"
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.exception("Background sync job failed: %s", e)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(e) or "Unknown error occurred",
                "duration": int((time.monotonic() - started) * 1000),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    logger.info(
        "Background sync summary: total=%s successful=%s failed=%s duration=%sms",
        summary.total_operations, summary.successful_operations, summary.failed_operations, summary.total_duration,
    )
    return {"success": True, "message": message, "summary": summary.to_dict()}


@router.get("/background")
async def get_background_sync_history(
    limit: int = Query(settings.SYNC_HISTORY_LIMIT, ge=1, le=100),
    caller: SyncCaller = Depends(get_sync_caller),
    engine: SyncEngine = Depends(get_sync_engine),
):
    """Most recent run summaries. Admins only see their own store."""
    store_id = None if caller.is_scheduler else _require_store(caller.user)
    history = engine.get_sync_history(limit, store_id=store_id)
    return {
        "success": True,
        "data": {
            "syncHistory": history,
            "lastSync": history[0] if history else None,
            "totalSyncs": len(history),
        },
    }


@router.get("/status")
async def get_sync_status(
    current_user: User = Depends(get_current_user),
    engine: SyncEngine = Depends(get_sync_engine),
):
    """History, 7-day statistics and recent errors for the admin's store"""
    store_id = _require_store(current_user)
    history = engine.get_sync_history(10, store_id=store_id)
    stats = engine.get_sync_statistics(days=7, store_id=store_id)
    integration = engine.resolver.get_integration(store_id, engine.provider_type)
    last_successful = next((h["timestamp"] for h in history if h["successfulOperations"] > 0), None)
    return {
        "success": True,
        "data": {
            "lastSync": history[0] if history else None,
            "recentSyncs": history,
            "statistics": stats,
            "recentErrors": engine.get_recent_errors(5, store_id=store_id),
            "running": engine.registry.is_running(store_id, engine.provider_type),
            "integration": {
                "type": engine.provider_type,
                "isActive": bool(integration and integration.is_active),
                "syncStatus": integration.sync_status if integration else None,
                "lastSyncAt": integration.last_sync_at.isoformat() if integration and integration.last_sync_at else None,
                "syncErrorMessage": integration.sync_error_message if integration else None,
            },
            "systemStatus": {
                "healthy": stats["successRate"] >= 0.8,
                "lastSuccessfulSync": last_successful,
                "averageDuration": stats["avgDuration"],
            },
        },
    }


@router.post("/{operation}")
async def sync_single_operation(
    operation: str,
    current_user: User = Depends(get_current_user),
    engine: SyncEngine = Depends(get_sync_engine),
):
    """Sync one entity type (warehouses, inventory-warehouses, inventory-locations, inventory) for the admin's store"""
    store_id = _require_store(current_user)
    try:
        operation = validate_operations([operation.replace("-", "_")])[0]
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    try:
        api_key = engine.resolver.resolve(store_id, engine.provider_type)
    except (CredentialNotFound, IntegrationInactive) as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        summary = await engine.sync_store(store_id, operations=[operation], api_key=api_key, trigger=SyncTrigger.ADMIN.value)
    except SyncAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))

    result = summary.results[0]
    content = {
        "success": result.success,
        "data": {
            "operation": result.operation,
            "addedCount": result.added,
            "updatedCount": result.updated,
            "failedCount": result.failed,
            "totalCount": result.total,
            "duration": result.duration,
        },
    }
    if not result.success:
        content["error"] = result.error
        return JSONResponse(status_code=502, content=content)
    return content
