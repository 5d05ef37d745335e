"""
Sync engine error taxonomy.

Credential and provider errors are fatal to a single operation, record errors
to a single record. None of them are allowed to unwind past the orchestrator.
"""
from typing import Optional


class SyncError(Exception):
    """Base class for sync engine failures."""


class CredentialNotFound(SyncError):
    def __init__(self, store_id: str, provider_type: str):
        self.store_id = store_id
        self.provider_type = provider_type
        super().__init__(f"No {provider_type} credential configured for store {store_id}")


class IntegrationInactive(SyncError):
    def __init__(self, store_id: str, provider_type: str):
        self.store_id = store_id
        self.provider_type = provider_type
        super().__init__(f"{provider_type} integration is inactive for store {store_id}")


class ProviderHTTPError(SyncError):
    """
    Non-2xx response, network error or malformed body from the carrier.
    status is None for network-level failures. partial_records holds whatever
    was fetched before the failing page.
    """

    def __init__(self, status: Optional[int], message: str, partial_records: Optional[list] = None):
        self.status = status
        self.message = message
        self.partial_records = partial_records or []
        prefix = f"HTTP {status}: " if status is not None else ""
        super().__init__(f"{prefix}{message}")


class RecordWriteError(SyncError):
    """One remote record could not be parsed or written."""


class SyncAlreadyRunning(SyncError):
    def __init__(self, store_id: str, provider_type: str):
        self.store_id = store_id
        self.provider_type = provider_type
        super().__init__(f"A {provider_type} sync is already running for store {store_id}")
