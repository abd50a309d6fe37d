import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response

from app.core.config import settings
from app.core.redis import redis_client
from app.core.metrics import (
    registry,
    background_tasks_running,
    background_task_errors_total,
)
from app.api.errors import register_exception_handlers
from app.api.main import api_router
from app.processors.split_reconciler import start_split_reconciler
from app.middleware.metrics_middleware import MetricsMiddleware
from app.middleware.tracing_middleware import TracingMiddleware
from app.middleware.logging_middleware import LoggingMiddleware

# Must run before any module-level get_logger() result is first used
from app.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

RECONCILER_TASK = "split-reconciler"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    background_tasks = []
    uses_redis = settings.ORDER_SEQUENCE_BACKEND == "redis"

    logger.info(
        "application_starting",
        service=settings.SERVICE_NAME,
        environment=settings.ENVIRONMENT,
        sequence_backend=settings.ORDER_SEQUENCE_BACKEND,
    )

    try:
        if uses_redis:
            await redis_client.connect()

        if settings.ENABLE_SPLIT_RECONCILER:
            reconciler_task = asyncio.create_task(
                start_split_reconciler(), name=RECONCILER_TASK
            )
            background_tasks.append(reconciler_task)
            background_tasks_running.labels(task_name=RECONCILER_TASK).set(1)
            background_tasks.append(
                asyncio.create_task(
                    monitor_background_tasks(reconciler_task), name="task-monitor"
                )
            )

        logger.info(
            "application_started",
            redis_connected=uses_redis,
            background_tasks=[task.get_name() for task in background_tasks],
        )
    except Exception as e:
        logger.error(
            "application_startup_failed",
            error_type=type(e).__name__,
            error_message=str(e),
            exc_info=True,
        )
        background_task_errors_total.labels(
            task_name="startup", error_type="startup_error"
        ).inc()
        raise

    yield

    logger.info("application_shutting_down")

    try:
        for task in background_tasks:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        background_tasks_running.labels(task_name=RECONCILER_TASK).set(0)

        if uses_redis:
            await redis_client.disconnect()

        logger.info("application_shutdown_complete")
    except Exception as e:
        logger.error(
            "application_shutdown_error",
            error_type=type(e).__name__,
            error_message=str(e),
            exc_info=True,
        )


async def monitor_background_tasks(*tasks):
    """Monitor background tasks and update metrics on failure"""
    reported = set()
    while True:
        await asyncio.sleep(30)

        for task in tasks:
            if task in reported or not task.done() or task.cancelled():
                continue
            reported.add(task)
            task_name = task.get_name()
            try:
                # Raises if the task died with an exception
                task.result()
            except Exception as e:
                logger.error(
                    "background_task_failed",
                    task_name=task_name,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                background_task_errors_total.labels(
                    task_name=task_name, error_type=type(e).__name__
                ).inc()
            background_tasks_running.labels(task_name=task_name).set(0)


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


register_exception_handlers(app)

# Middleware runs in reverse registration order:
#   TracingMiddleware -> LoggingMiddleware -> MetricsMiddleware -> route
# so trace ids are bound before the access log line is written.
if settings.ENABLE_METRICS:
    app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(TracingMiddleware)

app.include_router(api_router, prefix=settings.API_V1_STR)
