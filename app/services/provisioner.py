"""Create the account, role and profile for one accepted row."""
import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.services import accounts, profiles
from app.services.notifications import NotificationService
from app.services.row_validator import StudentUpload, UploadRecord

logger = logging.getLogger(__name__)


class ProvisioningError(Exception):
    """A provisioning step failed and the row-local transaction was rolled back."""

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(f"{step} failed: {message}")


class ProvisionResult(BaseModel):
    """Plain identifiers of what was created for a row."""

    account_id: int
    entity_id: int
    role: str
    notified: bool = False


def provision_member(
    db: Session,
    record: UploadRecord,
    tenant_id: int,
    notifier: Optional[NotificationService] = None,
) -> ProvisionResult:
    """
    Materialize an accepted row into a usable account.

    Steps 1-3 (account, role, profile) commit together or not at all. The
    welcome notification is attempted afterwards and never fails the row.

    Args:
        db: Database session with no pending work
        record: Validated upload record
        tenant_id: Tenant that owns the new account
        notifier: Notification service; skipped when None

    Returns:
        ProvisionResult with the created account and profile ids

    Raises:
        ProvisioningError: If any of steps 1-3 fails
    """
    is_student = isinstance(record, StudentUpload)
    role = accounts.STUDENT_ROLE if is_student else accounts.TRAINER_ROLE
    temporary_password = accounts.generate_temporary_password()

    step = "Account creation"
    try:
        account = accounts.create_account(db, tenant_id, record.email, temporary_password)

        step = "Role assignment"
        accounts.assign_role(db, account, role)

        step = "Profile creation"
        if is_student:
            profile = profiles.create_student_profile(
                db,
                account_id=account.id,
                tenant_id=tenant_id,
                full_name=record.full_name,
                roll_number=record.roll_number,
                degree=record.degree,
                branch=record.branch,
                year=record.year,
            )
        else:
            profile = profiles.create_trainer_profile(
                db,
                account_id=account.id,
                tenant_id=tenant_id,
                full_name=record.full_name,
                department=record.department,
                specialization=record.specialization,
            )

        account_id, entity_id = account.id, profile.id
        step = "Commit"
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning(f"⚠️ {step} failed for {record.email}, row rolled back: {e}")
        raise ProvisioningError(step, str(e)) from e

    result = ProvisionResult(account_id=account_id, entity_id=entity_id, role=role)

    if notifier is not None:
        try:
            notifier.send_welcome(record.email, record.full_name, temporary_password, role)
            result.notified = True
        except Exception as e:
            logger.error(f"Failed to send welcome message to {record.email}: {e}")

    if result.notified:
        try:
            accounts.mark_invited(db, account)
        except Exception as e:
            db.rollback()
            logger.error(f"Welcome sent but invitation time not saved for {record.email}: {e}")

    return result
