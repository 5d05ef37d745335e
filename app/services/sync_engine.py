"""
Sync engine: reconcile carrier warehouses, inventory warehouses, inventory locations
and inventory levels into store-scoped tables, one operation at a time.

Every operation is wrapped so its failure is recorded in the run summary and the
remaining operations still run. Nothing raised inside an operation escapes the engine.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models import IntegrationSyncStatus, SyncLog, SyncTrigger, utcnow
from app.services.catalog_projector import project_inventory_row
from app.services.credentials import CredentialResolver
from app.services.exceptions import CredentialNotFound, IntegrationInactive, ProviderHTTPError, SyncAlreadyRunning
from app.services.paginated_fetcher import fetch_all
from app.services.reconciler import ENTITY_SPECS, EntitySpec, ReconcileResult, reconcile
from app.services.run_registry import RunRegistry, run_registry
from app.services.shipstation_client import build_client

logger = logging.getLogger(__name__)

# Foundation entities first, inventory levels last
OPERATION_ORDER = ("warehouses", "inventory_warehouses", "inventory_locations", "inventory")

# after_write hooks per operation
AFTER_WRITE = {"inventory": project_inventory_row}


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


@dataclass
class OperationResult:
    operation: str
    success: bool
    duration: int  # milliseconds
    store_id: Optional[str] = None
    total: int = 0
    added: int = 0
    updated: int = 0
    failed: int = 0
    error: Optional[str] = None

    @property
    def records_processed(self) -> int:
        return self.added + self.updated

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "storeId": self.store_id,
            "success": self.success,
            "duration": self.duration,
            "recordsProcessed": self.records_processed,
            "total": self.total,
            "added": self.added,
            "updated": self.updated,
            "failed": self.failed,
            "error": self.error,
        }


@dataclass
class SyncRunSummary:
    """Result of one engine invocation. Built once at the end of the run."""
    results: list = field(default_factory=list)
    total_duration: int = 0
    timestamp: str = ""
    store_id: Optional[str] = None

    @property
    def total_operations(self) -> int:
        return len(self.results)

    @property
    def successful_operations(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_operations(self) -> int:
        return self.total_operations - self.successful_operations

    @property
    def total(self) -> int:
        return sum(r.total for r in self.results)

    @property
    def added(self) -> int:
        return sum(r.added for r in self.results)

    @property
    def updated(self) -> int:
        return sum(r.updated for r in self.results)

    @property
    def failed(self) -> int:
        return sum(r.failed for r in self.results)

    @property
    def status(self) -> str:
        return "completed_with_failures" if self.failed_operations else "completed"

    def to_dict(self) -> dict:
        return {
            "storeId": self.store_id,
            "status": self.status,
            "totalOperations": self.total_operations,
            "successfulOperations": self.successful_operations,
            "failedOperations": self.failed_operations,
            "totalDuration": self.total_duration,
            "timestamp": self.timestamp,
            "total": self.total,
            "added": self.added,
            "updated": self.updated,
            "failed": self.failed,
            "operations": [r.to_dict() for r in self.results],
        }


def validate_operations(operations: Optional[list]) -> list:
    """Canonical-order, de-duplicated operation list. Raises ValueError on unknown names."""
    if not operations:
        return list(OPERATION_ORDER)
    unknown = sorted({op for op in operations if op not in ENTITY_SPECS})
    if unknown:
        raise ValueError(f"Unknown sync operation(s): {', '.join(unknown)}")
    return [op for op in OPERATION_ORDER if op in operations]


class SyncEngine:
    """Carrier-to-local reconciliation for one or all stores."""

    def __init__(
        self,
        db: Session,
        resolver: Optional[CredentialResolver] = None,
        client_factory: Optional[Callable] = None,
        registry: Optional[RunRegistry] = None,
        config=None,
    ):
        self.db = db
        self.config = config or settings
        self.resolver = resolver or CredentialResolver(db)
        self.client_factory = client_factory or build_client
        self.registry = registry or run_registry
        self.provider_type = self.config.SYNC_PROVIDER_TYPE

    # -- runs ---------------------------------------------------------------

    async def sync_store(
        self,
        store_id: str,
        operations: Optional[list] = None,
        api_key: Optional[str] = None,
        trigger: str = SyncTrigger.ADMIN.value,
    ) -> SyncRunSummary:
        """
        Run the configured operations for one store and persist a SyncLog row.
        Raises ValueError for unknown operations and SyncAlreadyRunning when the
        store already has a run in progress; both happen before any work starts.
        """
        ops = validate_operations(operations)
        started = time.monotonic()
        with self.registry.acquire(store_id, self.provider_type):
            logger.info("Sync started for store %s (trigger=%s, operations=%s)", store_id, trigger, ops)
            results = await self._run_store(store_id, ops, api_key, started + self.config.SYNC_RUN_DEADLINE)
        summary = SyncRunSummary(
            results=results,
            total_duration=_elapsed_ms(started),
            timestamp=datetime.now(timezone.utc).isoformat(),
            store_id=store_id,
        )
        self.log_sync_results(summary, trigger)
        logger.info(
            "Sync finished for store %s: %s/%s operations ok, %s added, %s updated, %s failed records (%sms)",
            store_id, summary.successful_operations, summary.total_operations,
            summary.added, summary.updated, summary.failed, summary.total_duration,
        )
        return summary

    async def run_full_sync(
        self,
        operations: Optional[list] = None,
        trigger: str = SyncTrigger.SCHEDULER.value,
    ) -> SyncRunSummary:
        """Sync every store with an active integration. One SyncLog row for the whole invocation."""
        ops = validate_operations(operations)
        started = time.monotonic()
        store_ids = self.resolver.active_store_ids(self.provider_type)
        if not store_ids:
            logger.info("No active %s integrations found", self.provider_type)
        results: list = []
        for store_id in store_ids:
            store_started = time.monotonic()
            try:
                with self.registry.acquire(store_id, self.provider_type):
                    results.extend(
                        await self._run_store(store_id, ops, None, store_started + self.config.SYNC_RUN_DEADLINE)
                    )
            except SyncAlreadyRunning as e:
                logger.warning("Skipping store %s: %s", store_id, e)
                results.append(OperationResult("store_sync", False, _elapsed_ms(store_started), store_id=store_id, error=str(e)))
            except Exception as e:
                self.db.rollback()
                logger.exception("Sync crashed for store %s: %s", store_id, e)
                results.append(
                    OperationResult(
                        "store_sync", False, _elapsed_ms(store_started),
                        store_id=store_id, error=str(e) or e.__class__.__name__,
                    )
                )
        summary = SyncRunSummary(
            results=results,
            total_duration=_elapsed_ms(started),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self.log_sync_results(summary, trigger)
        logger.info(
            "Full sync finished: %s store(s), %s/%s operations ok (%sms)",
            len(store_ids), summary.successful_operations, summary.total_operations, summary.total_duration,
        )
        return summary

    async def _run_store(self, store_id: str, operations: list, api_key: Optional[str], deadline: float) -> list:
        if api_key is None:
            try:
                api_key = self.resolver.resolve(store_id, self.provider_type)
            except (CredentialNotFound, IntegrationInactive) as e:
                logger.warning("Sync blocked for store %s: %s", store_id, e)
                self._mark_integration(store_id, IntegrationSyncStatus.FAILED, str(e))
                return [OperationResult(op, False, 0, store_id=store_id, error=str(e)) for op in operations]

        self._mark_integration(store_id, IntegrationSyncStatus.SYNCING)
        results = []
        for operation in operations:
            results.append(await self.run_operation(store_id, operation, api_key, deadline))

        errors = [f"{r.operation}: {r.error}" for r in results if not r.success]
        if errors:
            self._mark_integration(store_id, IntegrationSyncStatus.FAILED, "; ".join(errors))
        else:
            self._mark_integration(store_id, IntegrationSyncStatus.COMPLETED)
        return results

    async def run_operation(
        self,
        store_id: str,
        operation: str,
        api_key: str,
        deadline: Optional[float] = None,
    ) -> OperationResult:
        """Fetch and reconcile one entity type. Always returns a result, never raises."""
        spec = ENTITY_SPECS[operation]
        started = time.monotonic()
        remaining = None if deadline is None else deadline - started
        if remaining is not None and remaining <= 0:
            logger.warning("Run deadline reached before %s for store %s", operation, store_id)
            return OperationResult(operation, False, 0, store_id=store_id, error="Run deadline exceeded before operation started")

        reconciled: Optional[ReconcileResult] = None
        error: Optional[str] = None
        try:
            records = await asyncio.wait_for(self._fetch(spec, api_key), timeout=remaining)
            reconciled = self._reconcile(store_id, spec, records)
        except ProviderHTTPError as e:
            error = str(e)
            logger.warning("%s sync failed for store %s: %s", operation, store_id, e)
            if self.config.SYNC_APPLY_PARTIAL_PAGES and e.partial_records:
                logger.info("Reconciling %s record(s) fetched before the failure", len(e.partial_records))
                reconciled = self._reconcile(store_id, spec, e.partial_records)
        except asyncio.TimeoutError:
            error = f"Operation exceeded the run deadline of {self.config.SYNC_RUN_DEADLINE:g}s"
            logger.warning("%s sync for store %s timed out", operation, store_id)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.exception("%s sync crashed for store %s: %s", operation, store_id, e)

        reconciled = reconciled or ReconcileResult()
        return OperationResult(
            operation=operation,
            success=error is None,
            duration=_elapsed_ms(started),
            store_id=store_id,
            total=reconciled.total,
            added=reconciled.added,
            updated=reconciled.updated,
            failed=reconciled.failed,
            error=error,
        )

    async def _fetch(self, spec: EntitySpec, api_key: str) -> list:
        client = self.client_factory(api_key)
        try:
            return await fetch_all(
                lambda page, size: client.fetch_page(spec.collection, page, size),
                page_size=self.config.SYNC_PAGE_SIZE,
                max_pages=self.config.SYNC_MAX_PAGES,
            )
        finally:
            await client.aclose()

    def _reconcile(self, store_id: str, spec: EntitySpec, records: list) -> ReconcileResult:
        return reconcile(self.db, store_id, spec, records, after_write=AFTER_WRITE.get(spec.operation))

    def _mark_integration(self, store_id: str, status: IntegrationSyncStatus, error: Optional[str] = None) -> None:
        try:
            integration = self.resolver.get_integration(store_id, self.provider_type)
            if not integration:
                return
            integration.sync_status = status.value
            if status != IntegrationSyncStatus.SYNCING:
                integration.last_sync_at = utcnow()
                integration.sync_error_message = error
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Could not update integration status for store %s: %s", store_id, e)

    # -- history ------------------------------------------------------------

    def log_sync_results(self, summary: SyncRunSummary, trigger: str) -> Optional[SyncLog]:
        """Persist the run summary. A failure here is logged, never raised."""
        try:
            row = SyncLog(
                store_id=summary.store_id,
                trigger=trigger,
                timestamp=utcnow(),
                total_operations=summary.total_operations,
                successful_operations=summary.successful_operations,
                failed_operations=summary.failed_operations,
                total_duration=summary.total_duration,
                results=[r.to_dict() for r in summary.results],
            )
            self.db.add(row)
            self.db.commit()
            self.cleanup_old_sync_logs(self.config.SYNC_LOG_RETENTION_DAYS)
            return row
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to log sync results: %s", e)
            return None

    def cleanup_old_sync_logs(self, days: int) -> int:
        cutoff = utcnow() - timedelta(days=days)
        deleted = self.db.query(SyncLog).filter(SyncLog.timestamp < cutoff).delete(synchronize_session=False)
        self.db.commit()
        if deleted:
            logger.info("Removed %s sync log(s) older than %s days", deleted, days)
        return deleted

    @staticmethod
    def _history_entry(row: SyncLog, store_id: Optional[str]) -> Optional[dict]:
        """
        One history entry for a SyncLog row. For a store-scoped read, a full-sync row
        (store_id NULL) is narrowed to that store's operations, or skipped if it has none.
        """
        operations = row.results or []
        totals = (row.total_operations, row.successful_operations, row.failed_operations, row.total_duration)
        if store_id is not None and row.store_id != store_id:
            operations = [op for op in operations if op.get("storeId") == store_id]
            if not operations:
                return None
            successful = sum(1 for op in operations if op.get("success"))
            duration = sum(op.get("duration") or 0 for op in operations)
            totals = (len(operations), successful, len(operations) - successful, duration)
        return {
            "id": row.id,
            "storeId": row.store_id,
            "trigger": row.trigger,
            "totalOperations": totals[0],
            "successfulOperations": totals[1],
            "failedOperations": totals[2],
            "totalDuration": totals[3],
            "operations": operations,
            "timestamp": row.timestamp.isoformat() if row.timestamp else None,
        }

    def _history(self, store_id: Optional[str], since: Optional[datetime] = None, limit: Optional[int] = None) -> list:
        """History entries newest first. A store sees its own runs and its share of full syncs."""
        query = self.db.query(SyncLog)
        if store_id is not None:
            query = query.filter(or_(SyncLog.store_id == store_id, SyncLog.store_id.is_(None)))
        if since is not None:
            query = query.filter(SyncLog.timestamp >= since)
        query = query.order_by(SyncLog.timestamp.desc())
        if store_id is None and limit is not None:
            query = query.limit(limit)

        entries = []
        for row in query:
            entry = self._history_entry(row, store_id)
            if entry is None:
                continue
            entries.append(entry)
            if limit is not None and len(entries) >= limit:
                break
        return entries

    def get_sync_history(self, limit: int = 50, store_id: Optional[str] = None) -> list:
        """Most recent run summaries, newest first. store_id=None returns every run."""
        return self._history(store_id, limit=limit)

    def get_sync_statistics(self, days: int = 7, store_id: Optional[str] = None) -> dict:
        entries = self._history(store_id, since=utcnow() - timedelta(days=days))
        total_syncs = len(entries)
        successful_syncs = sum(1 for e in entries if e["failedOperations"] == 0)
        total_operations = sum(e["totalOperations"] for e in entries)
        successful_operations = sum(e["successfulOperations"] for e in entries)
        return {
            "totalSyncs": total_syncs,
            "successfulSyncs": successful_syncs,
            "successRate": round(successful_syncs / total_syncs, 3) if total_syncs else 0,
            "avgDuration": round(sum(e["totalDuration"] for e in entries) / total_syncs) if total_syncs else 0,
            "lastSync": entries[0]["timestamp"] if entries else None,
            "totalOperations": total_operations,
            "totalSuccessfulOperations": successful_operations,
            "totalFailedOperations": total_operations - successful_operations,
            "operationSuccessRate": round(successful_operations / total_operations, 3) if total_operations else 0,
        }

    def get_recent_errors(self, limit: int = 5, store_id: Optional[str] = None) -> list:
        failing = [e for e in self._history(store_id) if e["failedOperations"] > 0][:limit]
        return [
            {
                "timestamp": entry["timestamp"],
                "failedOperations": [
                    {"operation": op.get("operation"), "storeId": op.get("storeId"), "error": op.get("error"), "duration": op.get("duration")}
                    for op in entry["operations"]
                    if not op.get("success")
                ],
            }
            for entry in failing
        ]
