"""
Pydantic schemas for request/response validation (Http/Requests).
"""
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class SyncTriggerRequest(BaseModel):
    """Optional body of POST /admin/sync/background"""
    storeId: Optional[str] = None
    operations: Optional[List[str]] = None

    @field_validator("operations")
    @classmethod
    def normalize_operations(cls, v):
        if v is None:
            return v
        # accept the dashed route spelling (inventory-locations) as well
        return [op.strip().replace("-", "_") for op in v if op and op.strip()]


class OperationResultResponse(BaseModel):
    operation: str
    storeId: Optional[str] = None
    success: bool
    duration: int
    recordsProcessed: int = 0
    total: int = 0
    added: int = 0
    updated: int = 0
    failed: int = 0
    error: Optional[str] = None


class SyncSummaryResponse(BaseModel):
    storeId: Optional[str] = None
    status: str
    totalOperations: int
    successfulOperations: int
    failedOperations: int
    totalDuration: int
    timestamp: str
    total: int = 0
    added: int = 0
    updated: int = 0
    failed: int = 0
    operations: List[OperationResultResponse] = Field(default_factory=list)


class SyncTriggerResponse(BaseModel):
    success: bool
    message: str
    summary: SyncSummaryResponse


class HealthResponse(BaseModel):
    success: bool
    message: str
    timestamp: str
