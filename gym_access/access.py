from __future__ import annotations

"""
Access admission decisions.

``AccessDecisionEngine.evaluate`` composes member, membership and payment state into one
verdict. Checks run in a fixed order and the first failing check decides the reason:

1. member exists            6. membership not cancelled
2. member account active    7. membership not awaiting its first payment
3. has a current membership 8. not overdue beyond the morosity tolerance
4. membership not expired   9. payment policy (only with partial payments enabled)
5. membership not frozen

The engine only reads. Writing the access log is the caller's job (``record_access``).
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from .database import storage_errors
from .errors import NotFoundError
from .gym_settings import ConfigProvider, PartialPaymentsConfig
from .memberships import check_member_overdue, current_membership, membership_status
from .models import AccessLog, Member, Membership
from .payment_status import OVERDUE, PAID, PaymentInfo, membership_payment_info
from .schemas import AccessMemberOut, AccessMembershipOut, AccessVerdict, PaymentInfoOut
from .utils import format_amount, plural, utcnow


logger = logging.getLogger("access")

REASON_ALLOWED = "Access granted"
REASON_MEMBER_NOT_FOUND = "Member not found"
REASON_MEMBER_INACTIVE = "Member account inactive"
REASON_NO_MEMBERSHIP = "No active membership"
REASON_EXPIRED = "Membership expired"
REASON_FROZEN = "Membership frozen"
REASON_CANCELLED = "Membership cancelled"
REASON_PENDING_PAYMENT = "Membership awaiting first payment - record a payment to activate"

# Days before the payment deadline from which the warning mentions the countdown
WARNING_WINDOW_DAYS = 5


@dataclass(frozen=True)
class PaymentAccess:
    can_access: bool
    reason: Optional[str] = None
    payment_info: Optional[PaymentInfo] = None


def check_payment_access(
    db: Session, membership: Membership, config: PartialPaymentsConfig, now: datetime
) -> PaymentAccess:
    if not config.enabled:
        return PaymentAccess(can_access=True)

    info = membership_payment_info(db, membership, config, now)
    if info.payment_status == PAID:
        return PaymentAccess(can_access=True, payment_info=info)
    if info.payment_status == OVERDUE:
        return PaymentAccess(
            can_access=False,
            reason=f"Payment overdue. Pending balance: {format_amount(info.pending_amount)}",
            payment_info=info,
        )
    # partial or pending
    if config.allow_access_with_partial:
        return PaymentAccess(can_access=True, payment_info=info)
    if info.paid_amount == 0:
        reason = f"Payment pending. {format_amount(info.total_amount)} must be paid to enter"
    else:
        reason = f"Incomplete payment. Pending balance: {format_amount(info.pending_amount)}"
    return PaymentAccess(can_access=False, reason=reason, payment_info=info)


def build_payment_warning(info: Optional[PaymentInfo]) -> Optional[str]:
    if info is None or info.pending_amount <= 0:
        return None
    message = f"Pending balance: {format_amount(info.pending_amount)}"
    days_left = info.days_until_deadline
    if 0 < days_left <= WARNING_WINDOW_DAYS:
        return f"{message}. Deadline in {plural(days_left, 'day')}"
    if days_left <= 0:
        return f"{message}. Deadline passed"
    return message


def _member_out(member: Member) -> AccessMemberOut:
    return AccessMemberOut.model_validate(member)


def _membership_out(membership: Membership, days_remaining: int) -> AccessMembershipOut:
    return AccessMembershipOut(plan_name=membership.plan.name, days_remaining=days_remaining, ends_at=membership.ends_at)


def _payment_out(info: Optional[PaymentInfo]) -> Optional[PaymentInfoOut]:
    return PaymentInfoOut.model_validate(info) if info is not None else None


class AccessDecisionEngine:
    def __init__(self, db: Session, config: ConfigProvider, clock: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self.config = config
        self.clock = clock

    def evaluate(self, member_id: str) -> AccessVerdict:
        with storage_errors():
            return self._evaluate(member_id, self.clock())

    def _evaluate(self, member_id: str, now: datetime) -> AccessVerdict:
        db = self.db
        member = db.get(Member, member_id)
        if member is None:
            return AccessVerdict(allowed=False, reason=REASON_MEMBER_NOT_FOUND)

        member_out = _member_out(member)
        if not member.active:
            return AccessVerdict(allowed=False, reason=REASON_MEMBER_INACTIVE, member=member_out)

        membership = current_membership(db, member_id)
        if membership is None:
            return AccessVerdict(allowed=False, reason=REASON_NO_MEMBERSHIP, member=member_out)

        status = membership_status(membership, now)
        if status.calculated_status == "expired":
            return AccessVerdict(allowed=False, reason=REASON_EXPIRED, member=member_out)
        if status.calculated_status == "frozen":
            return AccessVerdict(allowed=False, reason=REASON_FROZEN, member=member_out)
        if status.calculated_status == "cancelled":
            return AccessVerdict(allowed=False, reason=REASON_CANCELLED, member=member_out)

        membership_out = _membership_out(membership, status.days_remaining)
        if membership.status == "pending_payment":
            return AccessVerdict(
                allowed=False, reason=REASON_PENDING_PAYMENT, member=member_out, membership=membership_out
            )

        overdue = check_member_overdue(db, member_id, self.config.morosity_tolerance_days, now)
        if overdue.is_overdue:
            return AccessVerdict(
                allowed=False,
                reason=f"Overdue ({plural(overdue.days_past_due, 'day')} past due)",
                member=member_out,
            )

        payment = check_payment_access(db, membership, self.config.partial_payments(), now)
        if not payment.can_access:
            return AccessVerdict(
                allowed=False,
                reason=payment.reason or "Payment pending",
                member=member_out,
                membership=membership_out,
                payment_info=_payment_out(payment.payment_info),
            )

        return AccessVerdict(
            allowed=True,
            reason=REASON_ALLOWED,
            member=member_out,
            membership=membership_out,
            payment_info=_payment_out(payment.payment_info),
            payment_warning=build_payment_warning(payment.payment_info),
        )


def record_access(
    db: Session,
    member_id: str,
    method: str,
    allowed: bool,
    reason: str,
    now: datetime,
    verified_by: Optional[str] = None,
    qr_token_id: Optional[str] = None,
) -> AccessLog:
    log = AccessLog(
        id=str(uuid.uuid4()),
        member_id=member_id,
        method=method,
        allowed=allowed,
        reason=reason,
        qr_token_id=qr_token_id,
        verified_by=verified_by,
        accessed_at=now,
    )
    db.add(log)
    logger.info(
        "access member_id=%s method=%s allowed=%s reason=%r qr_token_id=%s",
        member_id,
        method,
        allowed,
        reason,
        qr_token_id,
    )
    return log


def last_allowed_entry(db: Session, member_id: str, since: datetime) -> Optional[AccessLog]:
    stmt = (
        select(AccessLog)
        .where(and_(AccessLog.member_id == member_id, AccessLog.allowed.is_(True), AccessLog.accessed_at >= since))
        .order_by(AccessLog.accessed_at.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def register_manual_access(
    db: Session,
    config: ConfigProvider,
    member_id: str,
    verified_by: Optional[str],
    clock: Callable[[], datetime] = utcnow,
) -> tuple[AccessLog, AccessVerdict]:
    """Evaluate and log a front-desk check-in. Unknown members cannot be logged."""
    verdict = AccessDecisionEngine(db, config, clock).evaluate(member_id)
    if verdict.member is None:
        raise NotFoundError(REASON_MEMBER_NOT_FOUND)
    with storage_errors():
        log = record_access(
            db, member_id, "manual", verdict.allowed, verdict.reason, clock(), verified_by=verified_by
        )
        db.commit()
        db.refresh(log)
    return log, verdict
