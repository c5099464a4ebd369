"""
Operational Prometheus metrics for CloudForge.

Tracks API error rates, credential federation outcomes and per-unit
aggregation outcomes so partial inventory results stay observable.
"""

from prometheus_client import Counter, Histogram

API_ERRORS_TOTAL = Counter(
    "cloudforge_api_errors_total",
    "Total API errors by path, method and status code",
    ["path", "method", "status_code"],
)

FEDERATION_REQUESTS_TOTAL = Counter(
    "cloudforge_federation_requests_total",
    "STS role assumptions performed for linked accounts",
    ["outcome"],  # success, failure, cache_hit
)

AGGREGATION_UNITS_TOTAL = Counter(
    "cloudforge_aggregation_units_total",
    "Processed (account, region) units during resource aggregation",
    ["resource_kind", "outcome"],  # success, failure
)

AGGREGATION_DURATION = Histogram(
    "cloudforge_aggregation_duration_seconds",
    "Wall-clock duration of one resource aggregation request",
    ["resource_kind"],
    buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120),
)
