"""
Prometheus counters for the matching engine
"""
from prometheus_client import Counter

REGISTRY_CACHE_LOOKUPS = Counter(
    "registry_cache_lookups_total",
    "Provider registry lookups by operation and outcome",
    ["operation", "outcome"],
)

COA_LINE_ITEM_MAPPINGS = Counter(
    "coa_line_item_mappings_total",
    "Line items classified into the chart of accounts, by method",
    ["method"],
)
