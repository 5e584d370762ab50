from __future__ import annotations

import sys
import threading
import uuid
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gym_access.database import Base, engine, SessionLocal
from gym_access.errors import NotFoundError, StorageUnavailableError, TokenConsumeError, TokenInvalidError
from gym_access.gym_settings import DictConfigProvider
from gym_access.models import AccessLog, Member, Membership, Plan, QrToken
from gym_access.qr_tokens import QrTokenManager, hash_token, sweep_qr_tokens


NOW = datetime(2026, 3, 1, 18, 0, 0)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def db_session():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(NOW)


def _member(db, with_membership: bool = True) -> Member:
    m = Member(id=str(uuid.uuid4()), first_name="Qr", last_name="Tester", email=f"{uuid.uuid4().hex}@ex.com")
    db.add(m)
    if with_membership:
        plan = Plan(id=str(uuid.uuid4()), name="Monthly", duration_days=30, price_cents=100000)
        db.add(plan)
        db.flush()
        db.add(
            Membership(
                id=str(uuid.uuid4()),
                member_id=m.id,
                plan_id=plan.id,
                status="active",
                starts_at=NOW - timedelta(days=2),
                ends_at=NOW + timedelta(days=28),
                total_amount_cents=100000,
            )
        )
    db.commit()
    return m


def _logs_for(db, member_id: str):
    return db.query(AccessLog).filter(AccessLog.member_id == member_id).order_by(AccessLog.accessed_at.asc()).all()


def test_issue_persists_only_the_hash(db_session, clock) -> None:
    member = _member(db_session)
    issued = QrTokenManager(db_session, DictConfigProvider(), clock).issue(member.id)

    assert issued.duration_seconds == 30
    assert issued.expires_at == NOW + timedelta(seconds=30)
    assert len(issued.token) == 64

    row = db_session.query(QrToken).filter(QrToken.token_hash == hash_token(issued.token)).one()
    assert row.member_id == member.id
    assert row.token_hash != issued.token
    assert row.used_at is None
    assert db_session.query(QrToken).filter(QrToken.token_hash == issued.token).count() == 0


def test_issue_uses_configured_duration(db_session, clock) -> None:
    member = _member(db_session)
    issued = QrTokenManager(db_session, DictConfigProvider({"qr_duration_seconds": 90}), clock).issue(member.id)
    assert issued.duration_seconds == 90
    assert issued.expires_at == NOW + timedelta(seconds=90)


def test_issue_for_unknown_member(db_session, clock) -> None:
    with pytest.raises(NotFoundError):
        QrTokenManager(db_session, DictConfigProvider(), clock).issue("missing-member")


def test_unknown_token_is_rejected_without_log(db_session, clock) -> None:
    before = db_session.query(AccessLog).count()
    with pytest.raises(TokenInvalidError):
        QrTokenManager(db_session, DictConfigProvider(), clock).validate("not-a-real-token")
    assert db_session.query(AccessLog).count() == before


def test_valid_token_grants_entry_and_is_consumed(db_session, clock) -> None:
    member = _member(db_session)
    manager = QrTokenManager(db_session, DictConfigProvider(), clock)
    issued = manager.issue(member.id)

    clock.advance(seconds=10)
    log, verdict = manager.validate(issued.token, verified_by="turnstile-1")
    assert verdict.allowed is True
    assert verdict.reason == "Access granted"
    assert log.method == "qr" and log.allowed is True
    assert log.verified_by == "turnstile-1"

    row = manager.find(issued.token)
    assert row is not None
    assert row.used_at == NOW + timedelta(seconds=10)
    assert log.qr_token_id == row.id


def test_expired_token_denied_and_left_unconsumed(db_session, clock) -> None:
    member = _member(db_session)
    manager = QrTokenManager(db_session, DictConfigProvider(), clock)
    issued = manager.issue(member.id)

    clock.advance(seconds=31)
    log, verdict = manager.validate(issued.token)
    assert verdict.allowed is False
    assert verdict.reason == "QR token expired"
    assert log.allowed is False and log.reason == "QR token expired"
    assert manager.find(issued.token).used_at is None


def test_token_exactly_at_expiry_is_still_valid(db_session, clock) -> None:
    member = _member(db_session)
    manager = QrTokenManager(db_session, DictConfigProvider(), clock)
    issued = manager.issue(member.id)
    clock.advance(seconds=30)
    _, verdict = manager.validate(issued.token)
    assert verdict.allowed is True


def test_replay_is_denied_even_after_a_denied_first_use(db_session, clock) -> None:
    # No membership: the first use is consumed but denied by the access decision
    member = _member(db_session, with_membership=False)
    manager = QrTokenManager(db_session, DictConfigProvider(), clock)
    issued = manager.issue(member.id)

    _, first = manager.validate(issued.token)
    assert first.allowed is False
    assert first.reason == "No active membership"

    clock.advance(seconds=5)
    _, second = manager.validate(issued.token)
    assert second.allowed is False
    assert second.reason == "QR token already used"

    logs = _logs_for(db_session, member.id)
    assert [l.reason for l in logs] == ["No active membership", "QR token already used"]


def test_recent_entry_guard_leaves_token_unconsumed(db_session, clock) -> None:
    member = _member(db_session)
    manager = QrTokenManager(db_session, DictConfigProvider({"qr_duration_seconds": 3600}), clock)

    first = manager.issue(member.id)
    _, verdict = manager.validate(first.token)
    assert verdict.allowed is True

    clock.advance(minutes=3)
    second = manager.issue(member.id)
    _, verdict = manager.validate(second.token)
    assert verdict.allowed is False
    assert verdict.reason == "Already entered 3 minutes ago"
    assert manager.find(second.token).used_at is None

    clock.advance(minutes=8)
    _, verdict = manager.validate(second.token)
    assert verdict.allowed is True
    assert manager.find(second.token).used_at == clock.now


def test_recent_entry_window_is_configurable(db_session, clock) -> None:
    member = _member(db_session)
    config = DictConfigProvider({"qr_duration_seconds": 3600, "qr_recent_entry_minutes": 1})
    manager = QrTokenManager(db_session, config, clock)
    _, verdict = manager.validate(manager.issue(member.id).token)
    assert verdict.allowed is True

    clock.advance(minutes=2)
    _, verdict = manager.validate(manager.issue(member.id).token)
    assert verdict.allowed is True


def test_consume_succeeds_once(db_session, clock) -> None:
    member = _member(db_session)
    manager = QrTokenManager(db_session, DictConfigProvider(), clock)
    row = manager.find(manager.issue(member.id).token)

    assert manager.consume(row.id, NOW) is True
    assert manager.consume(row.id, NOW + timedelta(seconds=1)) is False
    db_session.commit()

    db_session.refresh(row)
    assert row.used_at == NOW


def test_concurrent_validations_admit_exactly_one(db_session) -> None:
    member = _member(db_session)
    fixed = lambda: NOW + timedelta(seconds=5)
    issued = QrTokenManager(db_session, DictConfigProvider(), lambda: NOW).issue(member.id)

    workers = 4
    barrier = threading.Barrier(workers)
    verdicts = []
    errors = []
    lock = threading.Lock()

    def scan(terminal: str) -> None:
        db = SessionLocal()
        try:
            manager = QrTokenManager(db, DictConfigProvider(), fixed)
            barrier.wait()
            _, verdict = manager.validate(issued.token, verified_by=terminal)
            with lock:
                verdicts.append(verdict)
        except Exception as exc:  # collected and asserted below
            with lock:
                errors.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=scan, args=(f"terminal-{i}",)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(verdicts) == workers
    assert sum(1 for v in verdicts if v.allowed) == 1
    for v in verdicts:
        if not v.allowed:
            assert v.reason == "QR token already used" or v.reason.startswith("Already entered")

    db_session.expire_all()
    allowed_logs = [l for l in _logs_for(db_session, member.id) if l.allowed]
    assert len(allowed_logs) == 1


def test_status_reports_without_consuming(db_session, clock) -> None:
    member = _member(db_session)
    manager = QrTokenManager(db_session, DictConfigProvider(), clock)

    assert manager.status("nope").reason == "not_found"

    issued = manager.issue(member.id)
    status = manager.status(issued.token)
    assert status.valid is True and status.reason == "valid"
    assert manager.find(issued.token).used_at is None

    manager.validate(issued.token)
    assert manager.status(issued.token).reason == "already_used"

    stale = manager.issue(member.id)
    clock.advance(seconds=45)
    status = manager.status(stale.token)
    assert status.valid is False and status.reason == "expired"


def test_sweep_removes_old_tokens_and_detaches_logs(db_session, clock) -> None:
    member = _member(db_session)
    manager = QrTokenManager(db_session, DictConfigProvider(), clock)
    old = manager.issue(member.id)
    log, _ = manager.validate(old.token)
    old_id = manager.find(old.token).id

    clock.advance(hours=30)
    fresh = manager.issue(member.id)

    removed = sweep_qr_tokens(db_session, 24, clock())
    db_session.commit()
    db_session.expire_all()

    assert removed >= 1
    assert db_session.get(QrToken, old_id) is None
    assert manager.find(fresh.token) is not None
    kept_log = db_session.get(AccessLog, log.id)
    assert kept_log is not None
    assert kept_log.qr_token_id is None


class _LockedConfig(DictConfigProvider):
    def __init__(self, locked_key: str, values=None) -> None:
        super().__init__(values)
        self.locked_key = locked_key

    def _lookup(self, key: str):
        if key == self.locked_key:
            raise OperationalError("SELECT value FROM config", {}, Exception("database is locked"))
        return super()._lookup(key)


def test_config_read_failure_during_validation_is_retryable(db_session, clock) -> None:
    member = _member(db_session)
    issued = QrTokenManager(db_session, DictConfigProvider(), clock).issue(member.id)

    manager = QrTokenManager(db_session, _LockedConfig("qr_recent_entry_minutes"), clock)
    with pytest.raises(StorageUnavailableError) as excinfo:
        manager.validate(issued.token)
    assert not isinstance(excinfo.value, TokenConsumeError)
    assert excinfo.value.retryable is True

    db_session.rollback()
    assert manager.find(issued.token).used_at is None
    assert _logs_for(db_session, member.id) == []
