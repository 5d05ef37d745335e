"""
Auto-sync scheduler tests: interval parsing, due selection and one scheduler tick
"""
import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.models import SyncLog, utcnow
from app.services.sync_engine import SyncEngine
from app.workers.scheduler import WorkerScheduler, due_integrations, interval_seconds
from conftest import FakeCarrier, make_integration, make_store


@pytest.mark.parametrize(
    "value,seconds",
    [("10min", 600), ("1hour", 3600), ("1day", 86400), (" 1DAY ", 86400), (None, 3600), ("fortnightly", 3600)],
)
def test_interval_seconds(value, seconds):
    assert interval_seconds(value) == seconds


class TestDueIntegrations:
    def test_selects_stale_and_never_synced(self, db_session):
        now = utcnow()
        never = make_integration(db_session, make_store(db_session, "Never"), auto_sync_enabled=True)
        stale = make_integration(
            db_session, make_store(db_session, "Stale"),
            auto_sync_enabled=True, auto_sync_interval="1hour", last_sync_at=now - timedelta(hours=2),
        )
        make_integration(
            db_session, make_store(db_session, "Fresh"),
            auto_sync_enabled=True, auto_sync_interval="10min", last_sync_at=now - timedelta(minutes=5),
        )
        make_integration(db_session, make_store(db_session, "Manual"), auto_sync_enabled=False)
        make_integration(db_session, make_store(db_session, "Off"), auto_sync_enabled=True, is_active=False)

        due = due_integrations(db_session, "shipstation", now=now)

        assert {i.id for i in due} == {never.id, stale.id}


class TestWorkerScheduler:
    def _scheduler(self, session_factory, carrier, registry):
        return WorkerScheduler(
            session_factory=session_factory,
            engine_factory=lambda db: SyncEngine(db, client_factory=carrier.client_factory, registry=registry),
            check_interval=1,
        )

    async def test_tick_syncs_due_stores_once(self, db_session, session_factory, registry):
        store = make_store(db_session)
        make_integration(db_session, store, auto_sync_enabled=True, auto_sync_interval="1hour")
        carrier = FakeCarrier(collections={"inventory": [{"sku": "A", "available": 3}]})
        scheduler = self._scheduler(session_factory, carrier, registry)

        results = await scheduler.sync_due_stores()

        assert results[store.id]["success"] is True
        db_session.expire_all()
        log = db_session.query(SyncLog).one()
        assert log.trigger == "auto"
        assert log.store_id == store.id

        # last_sync_at was just set, so the next tick has nothing to do
        assert await scheduler.sync_due_stores() == {}
        assert db_session.query(SyncLog).count() == 1

    async def test_busy_store_is_skipped(self, db_session, session_factory, registry):
        store = make_store(db_session)
        make_integration(db_session, store, auto_sync_enabled=True)
        carrier = FakeCarrier()
        scheduler = self._scheduler(session_factory, carrier, registry)

        with registry.acquire(store.id, "shipstation"):
            results = await scheduler.sync_due_stores()

        assert results[store.id]["status"] == "skipped"
        assert carrier.requests == []

    async def test_worker_status(self, db_session, session_factory, registry):
        scheduler = self._scheduler(session_factory, FakeCarrier(), registry)
        assert scheduler.get_worker_status()["status"] == "stopped"
        await scheduler.sync_due_stores()
        status = scheduler.get_worker_status()
        assert status["last_check"] is not None
        assert status["next_check"] is not None
        assert status["check_interval_seconds"] == 1

    async def test_failed_tick_keeps_the_loop_alive(self):
        attempts = []

        def broken_session():
            attempts.append(1)
            raise OperationalError("SELECT 1", {}, Exception("db down"))

        scheduler = WorkerScheduler(session_factory=broken_session, check_interval=0.01)
        task = asyncio.get_running_loop().create_task(scheduler.start_scheduler())
        scheduler._task = task

        await asyncio.sleep(0.1)

        assert not task.done()
        assert len(attempts) > 1
        scheduler.stop_scheduler()
        with pytest.raises(asyncio.CancelledError):
            await task
