"""Identity domain registry.

Maps request path prefixes to exactly one identity domain. Resolution is
done on the server-controlled path before any token parsing, so the token
can never choose which key material verifies it.

Example YAML structure:
    domains:
      - domain_id: customer
        issuer: https://cognito-idp.us-east-1.amazonaws.com/${CUSTOMER_POOL_ID}
        audience: ${CUSTOMER_CLIENT_ID:-}
        path_prefixes: [/api/customer]
        claim_schema:
          - {name: token_use, equals: access}
          - {name: "custom:customer_type"}
      - domain_id: staff
        issuer: https://cognito-idp.us-east-1.amazonaws.com/${STAFF_POOL_ID}
        path_prefixes: [/api/admin]
        max_session_seconds: 28800
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
from pathlib import Path
from typing import Any, Iterable, Iterator

import yaml

from harborlist.trust.models import DomainId, IdentityDomain

logger = logging.getLogger(__name__)

# ${VAR} and ${VAR:-default}
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(:-([^}]*))?\}")


class RegistryError(ValueError):
    """Invalid domain registry definition."""


def _interpolate(value: Any) -> Any:
    """Recursively substitute environment placeholders."""
    if isinstance(value, str):

        def repl(m: re.Match[str]) -> str:
            found = os.getenv(m.group(1))
            if found is None or found == "":
                return m.group(3) if m.group(3) is not None else ""
            return found

        return _ENV_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_interpolate(v) for v in value]
    if isinstance(value, dict):
        return {k: _interpolate(v) for k, v in value.items()}
    return value


def _covers(prefix: str, path: str) -> bool:
    """Segment-aware prefix match: /api/admin covers /api/admin/x, not /api/administrator."""
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


def normalize_path(path: str) -> str:
    """Strip query/fragment and collapse dot segments."""
    path = path.split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        path = "/" + path
    normalized = posixpath.normpath(path)
    # normpath keeps a leading double slash
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


class DomainRegistry:
    """Ordered (path prefix -> domain) rules with mutually exclusive prefixes."""

    def __init__(self, domains: Iterable[IdentityDomain]):
        self._domains: dict[DomainId, IdentityDomain] = {}
        for domain in domains:
            if domain.domain_id in self._domains:
                raise RegistryError(f"Duplicate identity domain: {domain.domain_id.value}")
            self._domains[domain.domain_id] = domain

        rules = [
            (prefix, domain.domain_id)
            for domain in self._domains.values()
            for prefix in domain.path_prefixes
        ]
        self._check_exclusive(rules)
        # Longest prefix first
        self._rules = sorted(rules, key=lambda r: len(r[0]), reverse=True)

    @staticmethod
    def _check_exclusive(rules: list[tuple[str, DomainId]]) -> None:
        for i, (prefix_a, domain_a) in enumerate(rules):
            for prefix_b, domain_b in rules[i + 1 :]:
                if domain_a == domain_b:
                    continue
                if _covers(prefix_a, prefix_b) or _covers(prefix_b, prefix_a):
                    raise RegistryError(
                        f"Path prefixes overlap across domains: "
                        f"{prefix_a} ({domain_a.value}) / {prefix_b} ({domain_b.value})"
                    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DomainRegistry":
        raw = _interpolate(data)
        entries = raw.get("domains") if isinstance(raw, dict) else None
        if not isinstance(entries, list) or not entries:
            raise RegistryError("Registry must define a non-empty 'domains' list")
        return cls(IdentityDomain(**entry) for entry in entries)

    @classmethod
    def from_yaml(cls, path: Path) -> "DomainRegistry":
        data = yaml.safe_load(path.read_text())
        registry = cls.from_dict(data or {})
        logger.info(
            "Loaded identity domains file=%s domains=%s",
            path,
            [d.value for d in registry.domain_ids],
        )
        return registry

    @property
    def domain_ids(self) -> list[DomainId]:
        return list(self._domains)

    @property
    def rules(self) -> list[tuple[str, DomainId]]:
        return list(self._rules)

    def get(self, domain_id: DomainId) -> IdentityDomain:
        return self._domains[domain_id]

    def resolve(self, path: str) -> IdentityDomain | None:
        """Return the single domain answering for `path`, or None."""
        normalized = normalize_path(path)
        for prefix, domain_id in self._rules:
            if _covers(prefix, normalized):
                return self._domains[domain_id]
        return None

    def domain_for_issuer(self, issuer: str | None) -> IdentityDomain | None:
        """Look up a domain by issuer string. Used to classify denials only."""
        if not issuer:
            return None
        for domain in self._domains.values():
            if domain.issuer.rstrip("/") == issuer.rstrip("/"):
                return domain
        return None

    def __iter__(self) -> Iterator[IdentityDomain]:
        return iter(self._domains.values())

    def __len__(self) -> int:
        return len(self._domains)
