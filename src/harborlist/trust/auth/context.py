"""Build an AuthorizationContext from verified claims.

Handles the claim schema check and role/permission mapping for both
customer tokens (tier claim) and staff tokens (group membership).
"""

import json
from datetime import datetime, timezone
from typing import Any

import structlog

from harborlist.trust.auth.errors import ClaimSchemaMismatch
from harborlist.trust.models import (
    AuthorizationContext,
    ClaimSpec,
    ClaimType,
    IdentityDomain,
)

logger = structlog.get_logger()

_TYPE_CHECKS = {
    ClaimType.STRING: lambda v: isinstance(v, str),
    ClaimType.LIST: lambda v: isinstance(v, list),
    # bool is an int subclass
    ClaimType.INTEGER: lambda v: isinstance(v, int) and not isinstance(v, bool),
    ClaimType.BOOLEAN: lambda v: isinstance(v, bool),
}


def check_claim_schema(claims: dict[str, Any], schema: list[ClaimSpec]) -> None:
    """Raise ClaimSchemaMismatch if claims do not satisfy the schema."""
    for rule in schema:
        if rule.name not in claims or claims[rule.name] is None:
            if rule.required:
                raise ClaimSchemaMismatch(f"Missing claim {rule.name}")
            continue
        value = claims[rule.name]
        if not _TYPE_CHECKS[rule.type](value):
            raise ClaimSchemaMismatch(f"Claim {rule.name} is not {rule.type.value}")
        if rule.equals is not None and value != rule.equals:
            raise ClaimSchemaMismatch(f"Claim {rule.name} has unexpected value")


class ContextExtractor:
    """Extract an AuthorizationContext for one identity domain."""

    def __init__(self, domain: IdentityDomain):
        self._domain = domain

    def extract(self, claims: dict[str, Any]) -> AuthorizationContext:
        """Build the context. The domain always comes from the resolved domain.

        Args:
            claims: Verified JWT claims

        Returns:
            AuthorizationContext instance
        """
        check_claim_schema(claims, self._domain.claim_schema)

        groups = self._extract_groups(claims)
        role = self._determine_role(claims, groups)
        permissions = self._extract_permissions(claims, role)

        email = claims.get(self._domain.email_claim)
        context = AuthorizationContext(
            subject_id=str(claims["sub"]),
            domain_id=self._domain.domain_id,
            groups=groups,
            issued_at=datetime.fromtimestamp(int(claims["iat"]), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc),
            role=role,
            permissions=permissions,
            email=email if isinstance(email, str) else None,
            raw_claims=claims,
        )

        logger.debug(
            "Context extracted",
            subject_id=context.subject_id,
            domain=context.domain_id.value,
            role=role,
            groups=groups,
        )
        return context

    def _extract_groups(self, claims: dict[str, Any]) -> list[str]:
        """Ordered, de-duplicated group names.

        Handles both full path (/org/admins) and short name (admins) formats.
        """
        raw_groups = claims.get(self._domain.groups_claim, [])
        if isinstance(raw_groups, str):
            raw_groups = raw_groups.split()
        if not isinstance(raw_groups, list):
            return []

        groups: list[str] = []
        for g in raw_groups:
            if not isinstance(g, str):
                continue
            normalized = g.strip("/").split("/")[-1] if g else ""
            if normalized and normalized not in groups:
                groups.append(normalized)
        return groups

    def _determine_role(self, claims: dict[str, Any], groups: list[str]) -> str | None:
        domain = self._domain
        if domain.role_claim:
            value = claims.get(domain.role_claim)
            if isinstance(value, str) and value in domain.role_permissions:
                return value
        if domain.role_from_groups:
            # role_permissions keys are ordered by precedence
            for role in domain.role_permissions:
                if role in groups:
                    return role
        return domain.default_role

    def _extract_permissions(self, claims: dict[str, Any], role: str | None) -> list[str]:
        domain = self._domain
        if domain.permissions_claim and claims.get(domain.permissions_claim):
            raw = claims[domain.permissions_claim]
            try:
                parsed = json.loads(raw) if isinstance(raw, str) else raw
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list) and all(isinstance(p, str) for p in parsed):
                return parsed
            logger.warning(
                "Unparseable permissions claim, using role permissions",
                domain=domain.domain_id.value,
            )
        if role is None:
            return []
        return list(domain.role_permissions.get(role, []))
