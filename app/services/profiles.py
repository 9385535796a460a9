"""Domain profile service for students and trainers."""
from typing import Optional

from sqlalchemy.orm import Session

from app.models.profile import StudentProfile, TrainerProfile


def create_student_profile(
    db: Session,
    account_id: int,
    tenant_id: int,
    full_name: str,
    roll_number: str,
    degree: str = None,
    branch: str = None,
    year: int = None,
) -> StudentProfile:
    """Create a student profile linked to an account. Does not commit."""
    profile = StudentProfile(
        account_id=account_id,
        tenant_id=tenant_id,
        full_name=full_name,
        roll_number=roll_number,
        degree=degree,
        branch=branch,
        year=year,
    )
    db.add(profile)
    db.flush()
    return profile


def create_trainer_profile(
    db: Session,
    account_id: int,
    tenant_id: int,
    full_name: str,
    department: str = None,
    specialization: str = None,
) -> TrainerProfile:
    """Create a trainer profile linked to an account. Does not commit."""
    profile = TrainerProfile(
        account_id=account_id,
        tenant_id=tenant_id,
        full_name=full_name,
        department=department,
        specialization=specialization,
    )
    db.add(profile)
    db.flush()
    return profile


def member_full_name(db: Session, account_id: int) -> Optional[str]:
    """Full name from whichever profile belongs to the account."""
    for model in (StudentProfile, TrainerProfile):
        profile = db.query(model).filter(model.account_id == account_id).first()
        if profile:
            return profile.full_name
    return None
