"""Apply origin access policies with read-after-write verification."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from harborlist.trust.audit.metrics import POLICY_APPLY_TOTAL
from harborlist.trust.errors import PolicyApplyFailed
from harborlist.trust.models import OriginAccessPolicy, OriginKind
from harborlist.trust.publisher.clients import PolicyClient
from harborlist.trust.publisher.documents import OriginTarget, documents_match, render_policy

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    """Result of applying one policy to one origin."""

    origin: OriginKind
    success: bool
    changed: bool = False
    error: str | None = None


class PolicyPublisher:
    """Materialises abstract policies on the configured origins."""

    def __init__(
        self,
        origins: dict[OriginKind, tuple[OriginTarget, PolicyClient]],
        step_timeout: float = 30.0,
    ):
        """Initialize publisher.

        Args:
            origins: Target identifiers and policy client per origin
            step_timeout: Timeout for each read or write call, in seconds
        """
        self._origins = origins
        self._step_timeout = step_timeout

    @property
    def origins(self) -> list[OriginKind]:
        return list(self._origins)

    async def apply(self, origin: OriginKind, policy: OriginAccessPolicy) -> PublishResult:
        """Render, write if different, read back and compare.

        Never raises for origin failures; the result carries the error.
        """
        target, client = self._origins[origin]
        document = render_policy(target, policy)

        try:
            current = await self._call(client.get_policy)
            if documents_match(current, document):
                logger.debug("Policy already current origin=%s", origin.value)
                POLICY_APPLY_TOTAL.labels(origin=origin.value, result="unchanged").inc()
                return PublishResult(origin=origin, success=True, changed=False)

            await self._call(client.set_policy, document)

            confirmed = await self._call(client.get_policy)
            if not documents_match(confirmed, document):
                raise PolicyApplyFailed("Read-back policy differs from written policy", origin.value)
        except asyncio.TimeoutError:
            return self._failed(origin, f"Timed out after {self._step_timeout}s")
        except Exception as e:
            return self._failed(origin, str(e) or type(e).__name__)

        logger.info(
            "Applied origin policy origin=%s ranges=%s secrets=%s",
            origin.value,
            len(policy.allowed_ranges),
            len(policy.required_secrets),
        )
        POLICY_APPLY_TOTAL.labels(origin=origin.value, result="applied").inc()
        return PublishResult(origin=origin, success=True, changed=True)

    async def _call(self, fn: Any, *args: Any) -> Any:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self._step_timeout)

    def _failed(self, origin: OriginKind, error: str) -> PublishResult:
        logger.warning("Policy apply failed origin=%s error=%s", origin.value, error)
        POLICY_APPLY_TOTAL.labels(origin=origin.value, result="failed").inc()
        return PublishResult(origin=origin, success=False, error=error)
