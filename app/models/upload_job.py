"""Upload job and row outcome models for the onboarding audit trail."""
import uuid
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class EntityKind(str, Enum):
    """Kind of tenant member an upload creates."""

    STUDENT = "STUDENT"
    TRAINER = "TRAINER"


class JobStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    PARSE_FAILED = "PARSE_FAILED"


class OutcomeStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ErrorCode(str, Enum):
    """Category of a failed row."""

    PARSE = "PARSE"
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    PROVISIONING = "PROVISIONING"


class UploadJob(Base):
    """Model for tracking one onboarding file upload."""

    __tablename__ = "upload_jobs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Integer, nullable=False, index=True)
    initiated_by = Column(Integer, nullable=False)
    entity_kind = Column(String(20), nullable=False)
    filename = Column(String(500), nullable=False)
    status = Column(String(20), nullable=False, default=JobStatus.PROCESSING.value)
    total_rows = Column(Integer, default=0, nullable=False)
    successful_rows = Column(Integer, default=0, nullable=False)
    failed_rows = Column(Integer, default=0, nullable=False)
    error_summary = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    completed_at = Column(DateTime, nullable=True)

    outcomes = relationship(
        "RowOutcome",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="RowOutcome.row_number",
    )

    def __repr__(self):
        return f"<UploadJob(id={self.id}, kind='{self.entity_kind}', status='{self.status}')>"


class RowOutcome(Base):
    """Append-only result of processing one data row."""

    __tablename__ = "row_outcomes"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("upload_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    row_number = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False)  # SUCCESS, FAILED
    entity_id = Column(Integer, nullable=True)  # profile id on success
    account_id = Column(Integer, nullable=True)
    row_data = Column(JSON, nullable=False, default=dict)
    error_message = Column(Text, nullable=True)
    error_code = Column(String(20), nullable=True)
    welcome_sent = Column(Boolean, nullable=True)  # set on SUCCESS only
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    job = relationship("UploadJob", back_populates="outcomes")

    __table_args__ = (
        UniqueConstraint("job_id", "row_number", name="uq_row_outcomes_job_row"),
    )
