from __future__ import annotations

"""
Relational schema for members, plans, memberships, payments, QR tokens and the access log.

Memberships and payments are never deleted: memberships move between statuses and payments
are voided by setting ``cancelled_at``. Access logs are append-only.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from .database import Base
from .utils import utcnow


MEMBERSHIP_STATUSES = ("pending_payment", "active", "frozen", "cancelled", "expired")
# Statuses that count as "the member's current membership"
CURRENT_MEMBERSHIP_STATUSES = ("active", "frozen", "pending_payment")
PAYMENT_METHODS = ("cash", "card", "transfer")
ACCESS_METHODS = ("manual", "qr")


class Member(Base):
    __tablename__ = "members"
    """
    Gym member identity. ``active`` is the account switch checked before any membership logic.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    emergency_contact: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_members_active", "active"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Plan(Base):
    __tablename__ = "plans"
    """
    Sellable plan. The price is copied onto each membership at creation time.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Membership(Base):
    __tablename__ = "memberships"
    """
    A member's subscription to a plan for a date range. Status transitions only; never deleted.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    plan_id: Mapped[str] = mapped_column(String(36), ForeignKey("plans.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="active", nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    frozen_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    frozen_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Price snapshot at creation; later plan price changes do not affect it
    total_amount_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    member: Mapped[Member] = relationship(Member, lazy="joined")
    plan: Mapped[Plan] = relationship(Plan, lazy="joined")

    __table_args__ = (
        Index("ix_memberships_status", "status"),
        Index("ix_memberships_member_ends", "member_id", "ends_at"),
    )


class Payment(Base):
    __tablename__ = "payments"
    """
    Recorded (not processed) payment. Voided payments keep their row and are excluded from sums.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    membership_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("memberships.id", ondelete="SET NULL"), nullable=True, index=True
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    received_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    paid_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_payments_paid_at", "paid_at"),
        Index("ix_payments_method", "method"),
    )


class QrToken(Base):
    __tablename__ = "qr_tokens"
    """
    Single-use check-in credential. Only the sha256 of the secret is stored; ``used_at`` is written
    at most once, by a conditional update.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    member: Mapped[Member] = relationship(Member, lazy="joined")

    __table_args__ = (
        Index("ix_qr_tokens_expires_at", "expires_at"),
    )


class AccessLog(Base):
    __tablename__ = "access_logs"
    """
    One row per admission attempt, allowed or denied. System of record for attendance.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    allowed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    qr_token_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("qr_tokens.id", ondelete="SET NULL"), nullable=True
    )
    verified_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    accessed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_access_logs_accessed_at", "accessed_at"),
        Index("ix_access_logs_member_allowed", "member_id", "allowed", "accessed_at"),
    )


class ConfigEntry(Base):
    __tablename__ = "config"
    """
    Simple key/value configuration store for gym settings.
    """

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
