"""Natural-key conflict checks against committed tenant data."""
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.account import Account
from app.models.profile import StudentProfile
from app.services.row_validator import StudentUpload, UploadRecord


class DuplicateCheck(BaseModel):
    """Accept/reject decision for one validated row."""

    accepted: bool
    reason: Optional[str] = None


def check_duplicates(db: Session, record: UploadRecord, tenant_id: int) -> DuplicateCheck:
    """
    Reject rows whose email or roll number already exists.

    Emails are login identities, so an email held by another tenant is also
    a conflict. Roll numbers are only unique within a tenant.

    Args:
        db: Database session
        record: Validated upload record
        tenant_id: Tenant the row is being imported into

    Returns:
        DuplicateCheck with a conflict message when rejected
    """
    existing = (
        db.query(Account.tenant_id)
        .filter(func.lower(Account.email) == record.email.lower())
        .first()
    )
    if existing:
        if existing.tenant_id == tenant_id:
            return DuplicateCheck(accepted=False, reason=f"Email already exists: {record.email}")
        return DuplicateCheck(
            accepted=False,
            reason=f"Email already registered with another institution: {record.email}",
        )

    if isinstance(record, StudentUpload):
        roll_taken = (
            db.query(StudentProfile.id)
            .filter(
                StudentProfile.tenant_id == tenant_id,
                func.lower(StudentProfile.roll_number) == record.roll_number.lower(),
            )
            .first()
        )
        if roll_taken:
            return DuplicateCheck(
                accepted=False, reason=f"Roll number already exists: {record.roll_number}"
            )

    return DuplicateCheck(accepted=True)
