"""
Auto-sync Worker Scheduler

Runs inside the API process when AUTO_SYNC_ENABLED is set. Every check interval it
looks for integrations with auto sync enabled whose last sync is older than their
configured interval, and syncs each of those stores with trigger "auto".
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.models import StoreIntegration, SyncTrigger, utcnow
from app.services.exceptions import SyncAlreadyRunning
from app.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)

AUTO_SYNC_INTERVALS = {
    "10min": 600,
    "30min": 1800,
    "1hour": 3600,
    "6hours": 21600,
    "1day": 86400,
}
DEFAULT_AUTO_SYNC_INTERVAL = 3600


def interval_seconds(value: Optional[str]) -> int:
    """Seconds for an auto_sync_interval setting; unknown values fall back to one hour"""
    return AUTO_SYNC_INTERVALS.get((value or "").strip().lower(), DEFAULT_AUTO_SYNC_INTERVAL)


def due_integrations(db: Session, provider_type: str, now: Optional[datetime] = None) -> List[StoreIntegration]:
    """Active auto-sync integrations that never synced or whose interval has elapsed."""
    now = now or utcnow()
    candidates = (
        db.query(StoreIntegration)
        .filter(
            StoreIntegration.integration_type == provider_type,
            StoreIntegration.is_active.is_(True),
            StoreIntegration.auto_sync_enabled.is_(True),
        )
        .order_by(StoreIntegration.store_id)
        .all()
    )
    return [
        i for i in candidates
        if i.last_sync_at is None
        or (now - i.last_sync_at).total_seconds() >= interval_seconds(i.auto_sync_interval)
    ]


class WorkerScheduler:
    """Polls for due integrations and runs their syncs one store at a time."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        engine_factory: Callable[[Session], SyncEngine] = SyncEngine,
        check_interval: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.engine_factory = engine_factory
        self.check_interval = check_interval or settings.AUTO_SYNC_CHECK_INTERVAL_SEC
        self.provider_type = settings.SYNC_PROVIDER_TYPE
        self.running = False
        self.last_check: Optional[datetime] = None
        self.last_results: Dict[str, Dict[str, Any]] = {}
        self._task: Optional[asyncio.Task] = None

    async def sync_due_stores(self) -> Dict[str, Dict[str, Any]]:
        """One scheduler tick. Each due store is synced with its own session."""
        db = self.session_factory()
        try:
            store_ids = [i.store_id for i in due_integrations(db, self.provider_type)]
        finally:
            db.close()

        results: Dict[str, Dict[str, Any]] = {}
        for store_id in store_ids:
            results[store_id] = await self.run_store(store_id)
        self.last_check = datetime.now(timezone.utc)
        self.last_results.update(results)
        if store_ids:
            logger.info("Auto sync tick: %s store(s) synced", len(store_ids))
        return results

    async def run_store(self, store_id: str) -> Dict[str, Any]:
        db = self.session_factory()
        try:
            summary = await self.engine_factory(db).sync_store(store_id, trigger=SyncTrigger.AUTO.value)
            return {
                "success": summary.failed_operations == 0,
                "status": summary.status,
                "timestamp": summary.timestamp,
            }
        except SyncAlreadyRunning as e:
            logger.info("Auto sync skipped for store %s: %s", store_id, e)
            return {"success": False, "status": "skipped", "message": str(e)}
        except Exception as e:
            logger.error("Auto sync crashed for store %s: %s", store_id, e, exc_info=True)
            return {
                "success": False,
                "status": "crashed",
                "message": f"Worker crashed: {str(e)}",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        finally:
            db.close()

    async def start_scheduler(self):
        """Run ticks until stop_scheduler is called."""
        self.running = True
        logger.info("Auto sync scheduler started (check every %ss)", self.check_interval)

        while self.running:
            try:
                await self.sync_due_stores()
            except Exception as e:
                logger.error("Auto sync tick failed: %s", e, exc_info=True)
            await asyncio.sleep(self.check_interval)

    def stop_scheduler(self):
        self.running = False
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None
        logger.info("Auto sync scheduler stopped")

    def get_worker_status(self) -> Dict[str, Any]:
        next_check = None
        if self.last_check:
            next_check = self.last_check + timedelta(seconds=self.check_interval)
        return {
            "status": "running" if self.running else "stopped",
            "check_interval_seconds": self.check_interval,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "next_check": next_check.isoformat() if next_check else None,
            "stores": dict(self.last_results),
        }


# Global scheduler instance
scheduler = WorkerScheduler()


def start_background_workers():
    """Schedule the auto-sync loop on the running event loop."""
    if scheduler._task and not scheduler._task.done():
        return
    try:
        scheduler._task = asyncio.get_running_loop().create_task(scheduler.start_scheduler())
        logger.info("Background workers started successfully")
    except RuntimeError as e:
        logger.error("Failed to start background workers: %s", e)


def stop_background_workers():
    scheduler.stop_scheduler()


def get_workers_status() -> Dict[str, Any]:
    return scheduler.get_worker_status()
