"""Prometheus metrics for authorizer decisions and synchronizer runs."""

from prometheus_client import Counter, Gauge, Histogram

AUTHORIZER_DECISIONS_TOTAL = Counter(
    "harborlist_authorizer_decisions_total",
    "Authorizer decisions",
    ["domain", "effect", "cached"],
)

AUTHORIZER_DENIALS_TOTAL = Counter(
    "harborlist_authorizer_denials_total",
    "Authorizer denials by internal reason",
    ["reason"],
)

AUTHORIZER_LATENCY = Histogram(
    "harborlist_authorizer_latency_seconds",
    "Authorizer decision latency",
    ["domain"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

SYNC_RUNS_TOTAL = Counter(
    "harborlist_sync_runs_total",
    "Synchronizer runs by outcome",
    ["outcome"],
)

SYNC_CONSECUTIVE_FAILURES = Gauge(
    "harborlist_sync_consecutive_failures",
    "Consecutive synchronizer fetch failures",
)

TRUSTED_RANGES_VERSION = Gauge(
    "harborlist_trusted_ranges_version",
    "Committed trusted range set version",
)

EDGE_SECRET_VERSION = Gauge(
    "harborlist_edge_secret_version",
    "Active edge secret version",
)

POLICY_APPLY_TOTAL = Counter(
    "harborlist_policy_apply_total",
    "Origin policy applications",
    ["origin", "result"],
)
