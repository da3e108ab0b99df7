import asyncio
from contextlib import asynccontextmanager
from typing import Optional
import httpx
from fastapi import FastAPI
from storefront import logger
from storefront.api.routers import admin_routers, cur_version, public_routers
from storefront.background_workers.reconciliation import ReconciliationJob
from storefront.background_workers.stop_workers import stop_task
from storefront.cache._cache import build_redis
from storefront.common.custom_exceptions import register_all_exceptions
from storefront.common.logging_setup import setup_logging, stop_logging
from storefront.config.admin_config import admin_config
from storefront.config.settings import config_settings
from storefront.db.connection import build_engine, build_session_maker
from storefront.inventory.ledger import ReservationLedger
from storefront.middlewares.request_id_middleware import RequestIdMiddleware
from storefront.notifications.dispatcher import NotificationDispatcher
from storefront.notifications.notifier import LoggingNotifier, Notifier
from storefront.orders.webhooks import clover_upi_webhook
from storefront.payments.gateway import build_gateway

webhook_path = config_settings.WEBHOOK_PATH


def create_app(*, engine=None, redis_client=None, gateway=None, notifier: Optional[Notifier] = None,
               run_reconciliation: Optional[bool] = None):
    """Build the app. Clients passed in are used as-is and not closed on shutdown."""

    @asynccontextmanager
    async def app_lifespan(app: FastAPI):
        setup_logging()

        own_engine = engine is None
        own_redis = redis_client is None
        app.state.engine = engine or build_engine(config_settings.DATABASE_URL, pool_pre_ping=True)
        app.state.session_maker = build_session_maker(app.state.engine)
        app.state.redis = redis_client or build_redis()

        http_client = None
        if gateway is None:
            http_client = httpx.AsyncClient(timeout=config_settings.CLOVER_TIMEOUT_SECONDS)
            app.state.gateway = build_gateway(http_client)
        else:
            app.state.gateway = gateway

        app.state.ledger = ReservationLedger(app.state.redis,
                                             reservation_ttl=config_settings.RESERVATION_TTL_SECONDS,
                                             snapshot_ttl=config_settings.SNAPSHOT_TTL_SECONDS)

        try:
            await app.state.redis.ping()
        except Exception as e:
            # availability reads fail open, checkout will surface reservation errors
            logger.warning("startup.redis_unreachable", extra={"error": str(e)})

        app.state.notifications = NotificationDispatcher(notifier or LoggingNotifier(),
                                                         workers_count=config_settings.NOTIFICATION_WORKERS)
        await app.state.notifications()

        reconcile_task = None
        enabled = config_settings.RECONCILE_ENABLED if run_reconciliation is None else run_reconciliation
        if enabled:
            app.state.reconciler = ReconciliationJob(
                app.state.session_maker, app.state.gateway, app.state.notifications,
                interval_seconds=config_settings.RECONCILE_INTERVAL_SECONDS,
                grace_seconds=config_settings.RECONCILE_GRACE_SECONDS)
            reconcile_task = asyncio.create_task(app.state.reconciler.run())

        logger.info("startup.complete", extra={"env": admin_config.ENV, "reconciliation": enabled})
        try:
            yield
        finally:
            # new requests are no longer accepted at this point
            if reconcile_task is not None:
                app.state.reconciler.stop()
                await stop_task(reconcile_task)
            await app.state.notifications.shutdown()
            if http_client is not None:
                await http_client.aclose()
            if own_redis:
                await app.state.redis.aclose()
            if own_engine:
                # safe to dispose DB engine after workers exit
                await app.state.engine.dispose()
            logger.info("shutdown.complete")
            stop_logging()

    app = FastAPI(
        title="Storefront",
        version=cur_version,
        lifespan=app_lifespan)

    app.include_router(public_routers)

    app.add_api_route(webhook_path, clover_upi_webhook, methods=["POST"], name="clover_upi_webhook")

    if admin_config.ENABLE_ADMIN:
        app.include_router(admin_routers)      # mounts /api/v1/admin

    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)

    return app


app = create_app()
