"""Diff between the committed range set and a freshly fetched one."""

from __future__ import annotations

from dataclasses import dataclass, field

from harborlist.trust.models import TrustedRangeSet, canonical_cidrs


@dataclass
class TransitionPlan:
    """What a union-then-narrow transition will do to the allowed ranges."""

    base_version: int
    current: list[str] = field(default_factory=list)
    target: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """Check if there are any changes to apply."""
        return bool(self.added or self.removed)

    @property
    def union(self) -> list[str]:
        """Ranges allowed while both the old and the new set are live."""
        return canonical_cidrs([*self.current, *self.target])

    def summary(self) -> str:
        """Get a human-readable summary of the plan."""
        lines = [f"Committed version: {self.base_version}"]

        if self.added:
            lines.append(f"Ranges to add: {len(self.added)}")
            for cidr in self.added:
                lines.append(f"  + {cidr}")

        if self.removed:
            lines.append(f"Ranges to remove: {len(self.removed)}")
            for cidr in self.removed:
                lines.append(f"  - {cidr}")

        if not self.has_changes:
            lines.append("No changes")
        else:
            lines.append(
                f"Union during grace: {len(self.union)} ranges, "
                f"then narrowed to {len(self.target)}"
            )

        return "\n".join(lines)


def compute_transition_plan(
    committed: TrustedRangeSet | None, target: TrustedRangeSet
) -> TransitionPlan:
    """Compute the plan for moving from `committed` to `target`."""
    current = committed.all_ranges if committed else []
    wanted = target.all_ranges
    current_set = set(current)
    wanted_set = set(wanted)
    return TransitionPlan(
        base_version=committed.version if committed else 0,
        current=list(current),
        target=list(wanted),
        added=[c for c in wanted if c not in current_set],
        removed=[c for c in current if c not in wanted_set],
    )
