"""
Database engine and Prometheus instrumentation
"""

import re
import time

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import create_engine

from app.core.config import settings
from app.core.metrics import (
    db_pool_in_use,
    db_pool_available,
    db_query_duration_seconds,
    db_queries_total,
    db_query_errors_total,
)

_TABLE_PATTERN = re.compile(r"(?:from|into|update|join)\s+\"?([a-z_][a-z0-9_]*)")


def _update_pool_metrics(target: Engine) -> None:
    pool_obj = target.pool
    # StaticPool / NullPool (tests, sqlite) expose no sizing
    if not hasattr(pool_obj, "checkedout"):
        return
    checked_out = pool_obj.checkedout()
    db_pool_in_use.set(checked_out)
    db_pool_available.set(pool_obj.size() - checked_out + pool_obj.overflow())


def _extract_operation_and_table(statement: str) -> tuple[str, str]:
    """
    Classify a SQL statement for metric labels.

    Returns:
        (operation, table) where operation is select/insert/update/delete/other
        and table is the first table named after FROM/INTO/UPDATE/JOIN.
    """
    normalized = " ".join(statement.lower().split())
    operation = normalized.split(" ", 1)[0] if normalized else "other"
    if operation not in ("select", "insert", "update", "delete"):
        operation = "other"

    table_match = _TABLE_PATTERN.search(normalized)
    table = table_match.group(1) if table_match else "unknown"
    return operation, table


def instrument_engine(target: Engine) -> Engine:
    """Attach pool and query metric listeners to an engine."""

    @event.listens_for(target, "checkout")
    def receive_checkout(dbapi_conn, connection_record, connection_proxy):
        _update_pool_metrics(target)

    @event.listens_for(target, "checkin")
    def receive_checkin(dbapi_conn, connection_record):
        _update_pool_metrics(target)

    @event.listens_for(target, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.time()

    @event.listens_for(target, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if not hasattr(context, "_query_start_time"):
            return
        duration = time.time() - context._query_start_time
        operation, table = _extract_operation_and_table(statement)
        db_query_duration_seconds.labels(operation=operation, table=table).observe(duration)
        db_queries_total.labels(operation=operation).inc()

    @event.listens_for(target, "handle_error")
    def handle_error(exception_context):
        error_type = type(exception_context.original_exception).__name__.lower()
        if "timeout" in error_type:
            error_category = "timeout"
        elif "constraint" in error_type or "integrity" in error_type:
            error_category = "constraint"
        elif "connection" in error_type or "operational" in error_type:
            error_category = "connection"
        else:
            error_category = "other"
        db_query_errors_total.labels(error_type=error_category).inc()

    return target


engine = instrument_engine(
    create_engine(
        str(settings.SQLALCHEMY_DATABASE_URI),
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
    )
)
