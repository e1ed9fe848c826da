import logging
from datetime import datetime, timezone

import pytest
import structlog

from conftest import FakeStructLogger
from harborlist.trust.audit.logger import AuditLogger, configure_audit_logging
from harborlist.trust.models import (
    AuthorizationContext,
    AuthorizationDecision,
    DenialReason,
    DomainId,
    SyncOutcome,
    SyncReport,
    SyncStatus,
)


def _allow() -> AuthorizationDecision:
    ctx = AuthorizationContext(
        subject_id="u1",
        domain_id=DomainId.STAFF,
        groups=["admin"],
        issued_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        expires_at=datetime(2026, 1, 1, 1, tzinfo=timezone.utc),
        role="admin",
        raw_claims={"sub": "u1", "email": "ops@harborlist.test"},
    )
    return AuthorizationDecision.allow(ctx, cache_ttl=60)


def test_audit_logger_logs_allowed_as_info():
    fake = FakeStructLogger()
    audit = AuditLogger(enabled=True, log_claims=False, logger=fake)

    record = audit.log_decision(
        request_id="req-1", path="/api/admin/users", decision=_allow(), latency_ms=1.234
    )

    assert record.request_id == "req-1"
    assert record.subject_id == "u1"
    assert isinstance(record.timestamp, datetime)

    assert len(fake.calls) == 1
    level, payload = fake.calls[0]
    assert level == "info"
    assert payload["event"] == "authorizer_decision"
    assert payload["domain"] == "staff"
    assert payload["latency_ms"] == 1.23
    assert "claims" not in payload
    assert "reason" not in payload


def test_audit_logger_logs_denial_with_reason():
    fake = FakeStructLogger()
    audit = AuditLogger(logger=fake)

    record = audit.log_decision(
        request_id="req-2",
        path="/api/customer/x",
        decision=AuthorizationDecision.deny(DenialReason.DOMAIN_MISMATCH, DomainId.CUSTOMER),
        latency_ms=0.5,
    )

    assert record.reason is DenialReason.DOMAIN_MISMATCH
    level, payload = fake.calls[0]
    assert level == "warning"
    assert payload["reason"] == "domain_mismatch"
    assert "subject_id" not in payload


def test_audit_logger_claims_opt_in():
    fake = FakeStructLogger()
    AuditLogger(log_claims=True, logger=fake).log_decision("r", "/p", _allow(), 1.0)
    assert fake.calls[0][1]["claims"]["email"] == "ops@harborlist.test"


def test_audit_logger_disabled_still_returns_record():
    fake = FakeStructLogger()
    record = AuditLogger(enabled=False, logger=fake).log_decision("r", "/p", _allow(), 1.0)
    assert record.request_id == "r"
    assert fake.calls == []


def test_log_sync_levels():
    fake = FakeStructLogger()
    audit = AuditLogger(logger=fake)

    audit.log_sync(SyncReport(outcome=SyncOutcome.APPLIED, version_before=1, version_after=2))
    audit.log_sync(SyncReport(outcome=SyncOutcome.FETCH_FAILED, error="timeout"))

    assert [level for level, _ in fake.calls] == ["info", "warning"]
    assert fake.calls[0][1]["version_after"] == 2
    assert fake.calls[1][1]["error"] == "timeout"


def test_log_stalled_is_critical_even_when_disabled():
    fake = FakeStructLogger()
    AuditLogger(enabled=False, logger=fake).log_stalled(
        SyncStatus(consecutive_failures=4, last_error="timeout"), threshold=3
    )
    [(level, payload)] = fake.calls
    assert level == "critical"
    assert payload["event"] == "sync_stalled"
    assert payload["last_success_at"] is None


def test_log_error():
    fake = FakeStructLogger()
    AuditLogger(logger=fake).log_error("r", "boom", path="/api/admin")
    assert fake.calls == [("error", {"event": "authorizer_error", "request_id": "r", "error": "boom", "path": "/api/admin"})]


@pytest.mark.parametrize(
    "log_level, expected",
    [("INFO", logging.INFO), ("debug", logging.DEBUG), ("WARNING", logging.WARNING), (20, 20)],
)
def test_configure_audit_logging_levels(monkeypatch, log_level, expected):
    captured = {}

    def fake_basicConfig(*, level=None, **kwargs):
        captured["level"] = level

    orig_make = structlog.make_filtering_bound_logger

    def fake_make_filtering_bound_logger(level):
        captured["structlog_level"] = level
        return orig_make(level)

    monkeypatch.setattr(logging, "basicConfig", fake_basicConfig)
    monkeypatch.setattr(structlog, "make_filtering_bound_logger", fake_make_filtering_bound_logger)

    configure_audit_logging(log_level=log_level, json_format=True, service_name="test")

    assert captured["level"] == expected
    assert captured["structlog_level"] == expected
    assert structlog.contextvars.get_contextvars()["service"] == "test"
