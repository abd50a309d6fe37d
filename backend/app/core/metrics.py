"""Prometheus metrics for the order engine, on one registry served at /metrics."""

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry

registry = CollectorRegistry()

# HTTP API METRICS

http_requests_total = Counter(
    "http_requests_total",
    "Order API requests by method, templated path and status class",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "Order API request latency in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=registry,
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "Order API requests currently being served",
    ["method", "endpoint"],
    registry=registry,
)

# DATABASE METRICS

db_pool_in_use = Gauge(
    "db_pool_in_use",
    "Order store connections checked out of the pool",
    registry=registry,
)

db_pool_available = Gauge(
    "db_pool_available",
    "Idle order store connections left in the pool",
    registry=registry,
)

db_query_duration_seconds = Histogram(
    "db_query_duration_seconds",
    "Order store SQL statement time in seconds",
    ["operation", "table"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    registry=registry,
)

db_queries_total = Counter(
    "db_queries_total",
    "Order store SQL statements by verb",
    ["operation"],
    registry=registry,
)

db_query_errors_total = Counter(
    "db_query_errors_total",
    "Order store SQL statements that raised, by exception class",
    ["error_type"],
    registry=registry,
)

store_errors_total = Counter(
    "store_errors_total",
    "Order store operations that failed and were surfaced as StoreError",
    ["operation"],
    registry=registry,
)

# REDIS METRICS

redis_commands_total = Counter(
    "redis_commands_total",
    "Redis commands issued for order numbering and readiness",
    ["command"],
    registry=registry,
)

redis_command_duration_seconds = Histogram(
    "redis_command_duration_seconds",
    "Redis command latency in seconds",
    ["command"],
    buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
    registry=registry,
)

redis_errors_total = Counter(
    "redis_errors_total",
    "Redis command failures by kind (connection, other)",
    ["error_type"],
    registry=registry,
)

# ORDER ENGINE METRICS

orders_created_total = Counter(
    "orders_created_total",
    "Orders persisted by the splitter",
    ["mode"],  # single, split
    registry=registry,
)

checkout_splits_total = Counter(
    "checkout_splits_total",
    "Multi-seller checkouts by saga outcome",
    ["outcome"],  # completed, rolled_back, compensation_failed
    registry=registry,
)

checkout_split_size = Histogram(
    "checkout_split_size",
    "Number of seller orders produced per checkout",
    buckets=(1, 2, 3, 4, 5, 8, 13, 21),
    registry=registry,
)

order_status_changes_total = Counter(
    "order_status_changes_total",
    "Fulfillment status writes by operation and target status",
    ["operation", "to_status"],  # cancel, transition, override, rollback
    registry=registry,
)

payment_status_updates_total = Counter(
    "payment_status_updates_total",
    "Payment status writes by target status",
    ["to_status"],
    registry=registry,
)

order_engine_errors_total = Counter(
    "order_engine_errors_total",
    "Domain errors returned to callers",
    ["error_type"],
    registry=registry,
)

settlement_report_duration_seconds = Histogram(
    "settlement_report_duration_seconds",
    "Time to compute a settlement report",
    ["report"],  # seller_stats, seller_earnings, platform_stats
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=registry,
)

split_reconciliation_total = Counter(
    "split_reconciliation_total",
    "Stale checkout splits resolved by the reconciliation sweep",
    ["outcome"],  # completed, rolled_back
    registry=registry,
)

# BACKGROUND TASK METRICS

background_tasks_running = Gauge(
    "background_tasks_running",
    "Background tasks alive in this process (split reconciler)",
    ["task_name"],
    registry=registry,
)

background_task_errors_total = Counter(
    "background_task_errors_total",
    "Background tasks that exited with an exception",
    ["task_name", "error_type"],
    registry=registry,
)
