"""Edge provider integration."""

from .ranges import CloudflareRangeSource

__all__ = ["CloudflareRangeSource"]
