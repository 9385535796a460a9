"""Domain profiles linked to accounts."""
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from app.database import Base


class StudentProfile(Base):
    """Student profile created for an onboarded account."""

    __tablename__ = "student_profiles"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    tenant_id = Column(Integer, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    roll_number = Column(String(50), nullable=False)
    degree = Column(String(100), nullable=True)
    branch = Column(String(100), nullable=True)
    year = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index(
            "idx_student_profiles_tenant_roll",
            tenant_id,
            func.lower(roll_number),
            unique=True,
        ),
    )

    def __repr__(self):
        return f"<StudentProfile(id={self.id}, roll_number='{self.roll_number}')>"


class TrainerProfile(Base):
    """Trainer profile created for an onboarded account."""

    __tablename__ = "trainer_profiles"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    tenant_id = Column(Integer, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    department = Column(String(100), nullable=True)
    specialization = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<TrainerProfile(id={self.id}, full_name='{self.full_name}')>"
