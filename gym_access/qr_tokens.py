from __future__ import annotations

"""
Single-use, short-lived QR check-in tokens.

Lifecycle per token: issued -> expired | used. Both end states are terminal.

Only the sha256 of the secret is persisted and the plaintext is never logged. Validation runs
in a fixed order, since it determines which reason a racing caller sees:

a. unknown hash            -> TokenInvalidError (nothing to log against)
b. past expires_at         -> denied "QR token expired"
c. allowed entry within N  -> denied "Already entered ..." (token left unconsumed)
d. conditional consume     -> UPDATE ... WHERE used_at IS NULL; zero rows -> "QR token already used"
   then the full access decision, logged against the token.

The conditional update is the only coordination point. It holds across processes because the
predicate is evaluated by the database, not by application locks.
"""

import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from .access import AccessDecisionEngine, last_allowed_entry, record_access
from .database import storage_errors
from .errors import NotFoundError, StorageUnavailableError, TokenConsumeError, TokenInvalidError
from .gym_settings import ConfigProvider
from .models import AccessLog, Member, QrToken
from .schemas import AccessMemberOut, AccessVerdict
from .utils import plural, utcnow


logger = logging.getLogger("access.qr")

TOKEN_BYTES = 32

REASON_TOKEN_EXPIRED = "QR token expired"
REASON_TOKEN_USED = "QR token already used"


def hash_token(plain_token: str) -> str:
    return hashlib.sha256(plain_token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    duration_seconds: int


@dataclass(frozen=True)
class TokenStatus:
    valid: bool
    reason: str
    token: Optional[QrToken] = None


class QrTokenManager:
    def __init__(self, db: Session, config: ConfigProvider, clock: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self.config = config
        self.clock = clock

    def issue(self, member_id: str) -> IssuedToken:
        with storage_errors():
            if self.db.get(Member, member_id) is None:
                raise NotFoundError("Member not found")
            duration = self.config.qr_duration_seconds
            plain = secrets.token_hex(TOKEN_BYTES)
            expires_at = self.clock() + timedelta(seconds=duration)
            row = QrToken(id=str(uuid.uuid4()), member_id=member_id, token_hash=hash_token(plain), expires_at=expires_at)
            self.db.add(row)
            self.db.commit()
        logger.info("qr issued token_id=%s member_id=%s expires_at=%s", row.id, member_id, expires_at.isoformat())
        return IssuedToken(token=plain, expires_at=expires_at, duration_seconds=duration)

    def find(self, plain_token: str) -> Optional[QrToken]:
        with storage_errors():
            return self.db.execute(select(QrToken).where(QrToken.token_hash == hash_token(plain_token))).scalars().first()

    def status(self, plain_token: str) -> TokenStatus:
        """Read-only inspection; never consumes the token."""
        token = self.find(plain_token)
        if token is None:
            return TokenStatus(valid=False, reason="not_found")
        if token.used_at is not None:
            return TokenStatus(valid=False, reason="already_used", token=token)
        if self.clock() > token.expires_at:
            return TokenStatus(valid=False, reason="expired", token=token)
        return TokenStatus(valid=True, reason="valid", token=token)

    def consume(self, token_id: str, now: datetime) -> bool:
        """Compare-and-set on ``used_at``. True only for the single winning caller.

        Leaves the transaction open so the access log commits together with the claim.
        """
        try:
            result = self.db.execute(
                update(QrToken)
                .where(and_(QrToken.id == token_id, QrToken.used_at.is_(None)))
                .values(used_at=now)
                .execution_options(synchronize_session=False)
            )
        except (OperationalError, PoolTimeoutError) as exc:
            self.db.rollback()
            raise TokenConsumeError(cause=exc) from exc
        return result.rowcount == 1

    def validate(self, plain_token: str, verified_by: Optional[str] = None) -> tuple[AccessLog, AccessVerdict]:
        token = self.find(plain_token)
        if token is None:
            logger.info("qr rejected: unknown token")
            raise TokenInvalidError()

        now = self.clock()
        with storage_errors():
            member_out = AccessMemberOut.model_validate(token.member)

        if now > token.expires_at:
            return self._deny(token, REASON_TOKEN_EXPIRED, member_out, now, verified_by)

        with storage_errors():
            recent_minutes = self.config.qr_recent_entry_minutes
            recent = last_allowed_entry(self.db, token.member_id, now - timedelta(minutes=recent_minutes))
        if recent is not None:
            minutes_ago = int((now - recent.accessed_at).total_seconds() // 60)
            reason = f"Already entered {plural(minutes_ago, 'minute')} ago"
            return self._deny(token, reason, member_out, now, verified_by)

        if not self.consume(token.id, now):
            # Release the (empty) write transaction before logging the loss
            self.db.rollback()
            return self._deny(token, REASON_TOKEN_USED, member_out, now, verified_by)

        # Claim and log commit together or not at all; never retried here
        try:
            verdict = AccessDecisionEngine(self.db, self.config, lambda: now).evaluate(token.member_id)
            log = record_access(
                self.db, token.member_id, "qr", verdict.allowed, verdict.reason, now,
                verified_by=verified_by, qr_token_id=token.id,
            )
            self.db.commit()
        except (StorageUnavailableError, OperationalError, PoolTimeoutError) as exc:
            self.db.rollback()
            raise TokenConsumeError(cause=exc) from exc
        with storage_errors():
            self.db.refresh(log)
        return log, verdict

    def _deny(
        self,
        token: QrToken,
        reason: str,
        member_out: AccessMemberOut,
        now: datetime,
        verified_by: Optional[str],
    ) -> tuple[AccessLog, AccessVerdict]:
        with storage_errors():
            log = record_access(
                self.db, token.member_id, "qr", False, reason, now, verified_by=verified_by, qr_token_id=token.id
            )
            self.db.commit()
            self.db.refresh(log)
        return log, AccessVerdict(allowed=False, reason=reason, member=member_out)


def sweep_qr_tokens(db: Session, retention_hours: int, now: datetime) -> int:
    """Delete tokens that expired more than ``retention_hours`` ago, used or not.

    Such rows are immutable in every field validation reads, so no coordination with
    in-flight validations is needed.
    """
    cutoff = now - timedelta(hours=retention_hours)
    # Detach log references first; SQLite does not enforce ON DELETE SET NULL by default
    stale_ids = select(QrToken.id).where(QrToken.expires_at <= cutoff)
    db.execute(
        update(AccessLog)
        .where(AccessLog.qr_token_id.in_(stale_ids))
        .values(qr_token_id=None)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(delete(QrToken).where(QrToken.expires_at <= cutoff).execution_options(synchronize_session=False))
    return int(result.rowcount or 0)
