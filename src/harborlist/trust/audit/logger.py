"""Structured audit logging for authorizer decisions and trust sync runs."""

from datetime import datetime, timezone
from typing import Any

import logging
import structlog

from harborlist.trust.models import AuditRecord, AuthorizationDecision, SyncReport, SyncStatus


def configure_audit_logging(
    *,
    log_level: str | int,
    json_format: bool,
    service_name: str,
) -> None:
    # Resolve log level via stdlib logging (NOT structlog)
    if isinstance(log_level, str):
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = int(log_level)

    logging.basicConfig(level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


class AuditLogger:
    """Audit logger for authorizer decisions and synchronizer runs."""

    def __init__(
        self,
        enabled: bool = True,
        log_claims: bool = False,
        logger: Any = None,
    ):
        """Initialize audit logger.

        Args:
            enabled: Whether audit logging is enabled
            log_claims: Whether to log raw token claims (may carry PII)
            logger: Optional custom logger
        """
        self._enabled = enabled
        self._log_claims = log_claims
        self._logger = logger or structlog.get_logger("audit")

    def log_decision(
        self,
        request_id: str,
        path: str,
        decision: AuthorizationDecision,
        latency_ms: float,
    ) -> AuditRecord:
        """Log an authorizer decision.

        The internal denial reason is recorded here and nowhere else.

        Args:
            request_id: Unique request identifier
            path: Request path that was authorized
            decision: Authorizer decision
            latency_ms: Evaluation latency

        Returns:
            AuditRecord for the logged decision
        """
        context = decision.context
        record = AuditRecord(
            timestamp=datetime.now(timezone.utc),
            request_id=request_id,
            path=path,
            effect=decision.effect,
            domain_id=decision.domain_id,
            reason=decision.reason,
            subject_id=context.subject_id if context else None,
            latency_ms=latency_ms,
            cached=decision.cached,
        )

        if self._enabled:
            log_data: dict[str, Any] = {
                "event": "authorizer_decision",
                "request_id": request_id,
                "path": path,
                "effect": decision.effect.value,
                "domain": decision.domain_id.value if decision.domain_id else None,
                "latency_ms": round(latency_ms, 2),
                "cached": decision.cached,
            }

            if decision.reason:
                log_data["reason"] = decision.reason.value

            if context:
                log_data["subject_id"] = context.subject_id
                log_data["role"] = context.role
                if self._log_claims:
                    log_data["claims"] = context.raw_claims

            if decision.allowed:
                self._logger.info(**log_data)
            else:
                self._logger.warning(**log_data)

        return record

    def log_error(
        self,
        request_id: str,
        error: str,
        path: str | None = None,
    ) -> None:
        """Log an unexpected authorizer error.

        Args:
            request_id: Unique request identifier
            error: Error message
            path: Request path (if available)
        """
        if not self._enabled:
            return

        log_data: dict[str, Any] = {
            "event": "authorizer_error",
            "request_id": request_id,
            "error": error,
        }
        if path:
            log_data["path"] = path

        self._logger.error(**log_data)

    def log_sync(self, report: SyncReport) -> None:
        """Log the outcome of one synchronizer run."""
        if not self._enabled:
            return

        log_data: dict[str, Any] = {
            "event": "trust_sync",
            "outcome": report.outcome.value,
            "states": [s.value for s in report.states],
            "version_before": report.version_before,
            "version_after": report.version_after,
            "origins": report.origin_results,
        }
        if report.error:
            log_data["error"] = report.error
            self._logger.warning(**log_data)
        else:
            self._logger.info(**log_data)

    def log_stalled(self, status: SyncStatus, threshold: int) -> None:
        """Raise the operator alert for a synchronizer that keeps failing."""
        self._logger.critical(
            event="sync_stalled",
            consecutive_failures=status.consecutive_failures,
            threshold=threshold,
            last_success_at=status.last_success_at.isoformat() if status.last_success_at else None,
            last_error=status.last_error,
        )
