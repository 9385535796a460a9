"""Upload request and response schemas."""
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class RowOutcomeResponse(BaseModel):
    """Recorded result of one data row."""

    row_number: int
    status: str
    entity_id: Optional[int] = None
    account_id: Optional[int] = None
    row_data: Dict[str, Optional[str]] = Field(default_factory=dict)
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    welcome_sent: Optional[bool] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RowFailure(BaseModel):
    """A failed row, with enough detail to correct and re-upload it."""

    row_number: int
    error_message: str
    error_code: Optional[str] = None
    row_data: Dict[str, Optional[str]] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class UploadJobResponse(BaseModel):
    """Upload job status response."""

    id: UUID
    tenant_id: int
    initiated_by: int
    entity_kind: str
    filename: str
    status: str
    total_rows: int
    successful_rows: int
    failed_rows: int
    error_summary: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UploadSummaryResponse(UploadJobResponse):
    """Result of a synchronous upload: counts plus every failed row."""

    errors: List[RowFailure] = Field(default_factory=list)


class UploadJobDetailResponse(UploadJobResponse):
    """Job with all of its row outcomes."""

    outcomes: List[RowOutcomeResponse] = Field(default_factory=list)


class UploadJobListResponse(BaseModel):
    """Upload history for a tenant."""

    items: List[UploadJobResponse]
    limit: int
    offset: int


class UploadQueuedResponse(BaseModel):
    """Response after handing an upload to a background worker."""

    job_id: str
    status: str
    message: str = "File uploaded successfully, processing in background"


class CancelResponse(BaseModel):
    job_id: str
    cancel_requested: bool
    message: str


class ResendInvitationResponse(BaseModel):
    account_id: int
    email: str
    message: str = "Invitation resent"
