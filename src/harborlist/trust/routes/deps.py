from fastapi import HTTPException, status

from harborlist.trust.audit import AuditLogger
from harborlist.trust.auth import DomainRegistry, EdgeSecretGate
from harborlist.trust.authorizer import TokenAuthorizer
from harborlist.trust.config import Settings, settings as default_settings
from harborlist.trust.publisher import build_publisher
from harborlist.trust.store import TrustStore, build_store
from harborlist.trust.sync import OriginTrustSynchronizer, SyncScheduler


_registry: DomainRegistry | None = None
_authorizer: TokenAuthorizer | None = None
_synchronizer: OriginTrustSynchronizer | None = None
_scheduler: SyncScheduler | None = None
_audit_logger: AuditLogger | None = None


async def init_deps(settings: Settings | None = None):

    global _registry, _authorizer, _synchronizer, _scheduler, _audit_logger

    settings = settings or default_settings

    _audit_logger = AuditLogger(
        enabled=settings.audit_enabled,
        log_claims=settings.audit_log_claims,
    )

    _registry = DomainRegistry.from_yaml(settings.domains_file)

    store: TrustStore = build_store(settings)
    gate = EdgeSecretGate(
        store,
        header=settings.edge_secret_header,
        ttl_seconds=settings.edge_secret_cache_ttl_seconds,
    )
    _authorizer = TokenAuthorizer.from_settings(
        _registry, settings, edge_secret_gate=gate, audit=_audit_logger
    )

    _synchronizer = OriginTrustSynchronizer.from_settings(
        settings, store, build_publisher(settings), audit=_audit_logger
    )
    _scheduler = SyncScheduler(_synchronizer, interval_seconds=settings.sync_interval_seconds)


def get_registry() -> DomainRegistry:
    if _registry is None:
        raise RuntimeError("Domain registry not initialized")
    return _registry


def get_authorizer() -> TokenAuthorizer:
    if _authorizer is None:
        raise RuntimeError("Authorizer not initialized")
    return _authorizer


def get_synchronizer() -> OriginTrustSynchronizer:
    if _synchronizer is None:
        raise RuntimeError("Synchronizer not initialized")
    return _synchronizer


def get_scheduler() -> SyncScheduler:
    if _scheduler is None:
        raise RuntimeError("Scheduler not initialized")
    return _scheduler


def get_audit_logger() -> AuditLogger:
    if _audit_logger is None:
        raise RuntimeError("Audit logger not initialized")
    return _audit_logger


def raise_401(detail="Unauthorized"):
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )
