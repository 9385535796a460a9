"""Account and role models for tenant members."""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base

# Account status values
PENDING_SETUP = "PENDING_SETUP"

account_roles = Table(
    "account_roles",
    Base.metadata,
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    """Named role granted to accounts."""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, unique=True)

    def __repr__(self):
        return f"<Role(id={self.id}, name='{self.name}')>"


class Account(Base):
    """Login identity for a tenant member."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    must_change_password = Column(Boolean, default=True, nullable=False)
    account_status = Column(String(20), default=PENDING_SETUP, nullable=False)
    invitation_sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    roles = relationship("Role", secondary=account_roles, lazy="selectin")

    __table_args__ = (
        Index("idx_accounts_email_lower", func.lower(email), unique=True),
    )

    def __repr__(self):
        return f"<Account(id={self.id}, tenant_id={self.tenant_id}, email='{self.email}')>"
