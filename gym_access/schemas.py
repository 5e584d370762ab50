from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# Members
class MemberCreate(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    emergency_contact: Optional[str] = None
    notes: Optional[str] = None
    active: bool = True


class MemberUpdate(BaseModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    emergency_contact: Optional[str] = None
    notes: Optional[str] = None
    active: Optional[bool] = None


class MemberOut(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    emergency_contact: Optional[str] = None
    notes: Optional[str] = None
    active: bool
    created_at: datetime

    model_config = dict(from_attributes=True)


class MembersListResponse(BaseModel):
    items: List[MemberOut]
    total: int


# Plans
class PlanCreate(BaseModel):
    name: str
    duration_days: int = Field(gt=0)
    price_cents: int = Field(ge=0)
    description: Optional[str] = None


class PlanUpdate(BaseModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    price_cents: Optional[int] = Field(default=None, ge=0)
    active: Optional[bool] = None


class PlanOut(BaseModel):
    id: str
    name: str
    description: Optional[str]
    duration_days: int
    price_cents: int
    active: bool

    model_config = dict(from_attributes=True)


class PlansListResponse(BaseModel):
    items: List[PlanOut]
    total: int


# Memberships
class MembershipCreate(BaseModel):
    member_id: str
    plan_id: str
    starts_at: Optional[datetime] = None


class MembershipRenew(BaseModel):
    member_id: str
    plan_id: str


class MembershipFreeze(BaseModel):
    id: str
    days: int = Field(gt=0)


class MembershipAction(BaseModel):
    id: str


class MembershipOut(BaseModel):
    id: str
    member_id: str
    plan_id: str
    status: str
    calculated_status: str
    days_remaining: int
    starts_at: datetime
    ends_at: datetime
    frozen_at: Optional[datetime] = None
    frozen_days: int
    cancelled_at: Optional[datetime] = None
    total_amount_cents: Optional[int] = None


class MembershipsListResponse(BaseModel):
    items: List[MembershipOut]
    total: int


class OverdueMembershipOut(BaseModel):
    membership_id: str
    member_id: str
    member_name: str
    plan_name: str
    ends_at: datetime
    days_past_due: int


class OverdueMembershipsResponse(BaseModel):
    items: List[OverdueMembershipOut]
    total: int


# Payments
class PaymentCreate(BaseModel):
    member_id: str
    membership_id: Optional[str] = None
    amount_cents: int = Field(gt=0)
    method: Literal["cash", "card", "transfer"]
    received_by: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentCancel(BaseModel):
    id: str
    cancelled_by: Optional[str] = None
    reason: str = Field(min_length=1)


class PaymentOut(BaseModel):
    id: str
    member_id: str
    membership_id: Optional[str]
    amount_cents: int
    method: str
    reference: Optional[str]
    notes: Optional[str]
    received_by: Optional[str]
    paid_at: datetime
    cancelled_at: Optional[datetime]
    cancelled_by: Optional[str]
    cancellation_reason: Optional[str]

    model_config = dict(from_attributes=True)


class PaymentsListResponse(BaseModel):
    items: List[PaymentOut]
    total: int


class PaymentInfoOut(BaseModel):
    total_amount: int
    paid_amount: int
    pending_amount: int
    payment_status: Literal["paid", "partial", "pending", "overdue"]
    payment_deadline: datetime
    days_until_deadline: int
    is_overdue_payment: bool

    model_config = dict(from_attributes=True)


class PendingPaymentOut(BaseModel):
    membership_id: str
    member_id: str
    member_name: str
    plan_name: str
    payment_info: PaymentInfoOut


class PendingPaymentsResponse(BaseModel):
    items: List[PendingPaymentOut]
    total: int


class RevenueOut(BaseModel):
    total_cents: int
    count: int


# Settings
class SettingSet(BaseModel):
    key: str
    value: str


class SettingsOut(BaseModel):
    values: dict[str, str]


# Access
class AccessMemberOut(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str

    model_config = dict(from_attributes=True)


class AccessMembershipOut(BaseModel):
    plan_name: str
    days_remaining: int
    ends_at: datetime


class AccessVerdict(BaseModel):
    allowed: bool
    reason: str
    member: Optional[AccessMemberOut] = None
    membership: Optional[AccessMembershipOut] = None
    payment_info: Optional[PaymentInfoOut] = None
    payment_warning: Optional[str] = None


class AccessValidateRequest(BaseModel):
    member_id: str


class ManualCheckinRequest(BaseModel):
    member_id: str
    verified_by: Optional[str] = None


class AccessLogOut(BaseModel):
    id: str
    member_id: str
    method: str
    allowed: bool
    reason: Optional[str]
    qr_token_id: Optional[str]
    verified_by: Optional[str]
    accessed_at: datetime

    model_config = dict(from_attributes=True)


class AccessResult(BaseModel):
    access_log: AccessLogOut
    verdict: AccessVerdict


class AccessLogsListResponse(BaseModel):
    items: List[AccessLogOut]
    total: int


class AccessStats(BaseModel):
    total: int
    allowed: int
    denied: int


# QR
class QrGenerateRequest(BaseModel):
    member_id: str


class QrTokenOut(BaseModel):
    token: str
    expires_at: datetime
    duration_seconds: int


class QrValidateRequest(BaseModel):
    token: str = Field(min_length=1)
    verified_by: Optional[str] = None


class QrStatusOut(BaseModel):
    valid: bool
    reason: Literal["valid", "not_found", "expired", "already_used"]
    member_id: Optional[str] = None
    expires_at: Optional[datetime] = None


# Maintenance
class MaintenanceResult(BaseModel):
    ok: bool = True
    affected: int
