"""Account and role service used by the provisioner."""
import logging
import secrets
import string
from datetime import datetime

import bcrypt
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.account import PENDING_SETUP, Account, Role

STUDENT_ROLE = "STUDENT"
TRAINER_ROLE = "TRAINER"
DEFAULT_ROLES = ["SYSTEM_ADMIN", "COLLEGE_ADMIN", TRAINER_ROLE, STUDENT_ROLE]

PASSWORD_ALPHABET = string.ascii_letters + string.digits

settings = get_settings()
logger = logging.getLogger(__name__)


class RoleNotFoundError(LookupError):
    """Raised when a role has not been seeded."""


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def generate_temporary_password(length: int = None) -> str:
    """Generate a random temporary credential for first login."""
    length = length or settings.temporary_password_length
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def ensure_roles(db: Session) -> None:
    """Seed the default roles if they are missing."""
    existing = {name for (name,) in db.query(Role.name).all()}
    missing = [name for name in DEFAULT_ROLES if name not in existing]
    for name in missing:
        db.add(Role(name=name))
    if missing:
        db.commit()
        logger.info(f"Seeded roles: {', '.join(missing)}")


def get_role(db: Session, name: str) -> Role:
    role = db.query(Role).filter(Role.name == name).first()
    if not role:
        raise RoleNotFoundError(f"Role {name} not found")
    return role


def create_account(db: Session, tenant_id: int, email: str, temporary_password: str) -> Account:
    """
    Create a login account that must change its password on first use.

    Does not commit; the caller owns the transaction.
    """
    account = Account(
        tenant_id=tenant_id,
        email=email.strip().lower(),
        password_hash=hash_password(temporary_password),
        is_active=True,
        must_change_password=True,
        account_status=PENDING_SETUP,
    )
    db.add(account)
    db.flush()
    return account


def assign_role(db: Session, account: Account, role_name: str) -> None:
    """Grant a role to an account. Does not commit."""
    role = get_role(db, role_name)
    if role not in account.roles:
        account.roles.append(role)
    db.flush()


def reset_temporary_password(db: Session, account: Account) -> str:
    """
    Issue a fresh temporary password for an account still pending setup.

    Does not commit; the new hash is only kept once the invitation carrying
    it has been delivered (see mark_invited).
    """
    temporary_password = generate_temporary_password()
    account.password_hash = hash_password(temporary_password)
    account.must_change_password = True
    db.flush()
    return temporary_password


def mark_invited(db: Session, account: Account) -> None:
    """Record that a welcome message reached the member, and commit."""
    account.invitation_sent_at = datetime.utcnow()
    db.commit()
