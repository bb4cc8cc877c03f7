from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from apps.api.core.config import Settings, get_settings
from apps.api.core.logging import configure_logging, init_tracer, shutdown_tracer
from apps.api.metrics import metrics_registry
from apps.api.middleware import RBACMiddleware
from apps.api.routes import metrics, ping, purchases, revenue, scans, tickets
from apps.api.services import HttpPaymentGateway, SqlEventCatalog, SqlTicketStore, TicketingService
from packages.ticketing.commission import CommissionAllocation, CommissionCalculator, PaymentFeeSchedule
from packages.ticketing.memory import LoggingNotifier, LoggingReconciliationSink, SandboxPaymentGateway
from packages.ticketing.ports import PaymentGateway
from packages.ticketing.qr_codec import QRPayloadCodec
from packages.ticketing.ticket_ids import TicketIdGenerator


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    if settings.payment_provider == "http":
        api_key = settings.payment_api_key.get_secret_value() if settings.payment_api_key else None
        return HttpPaymentGateway.from_settings(
            settings.payment_base_url, api_key=api_key, timeout=settings.payment_timeout_seconds
        )
    return SandboxPaymentGateway()


def build_ticketing_service(
    settings: Settings,
    *,
    store: SqlTicketStore,
    catalog: SqlEventCatalog,
    payments: PaymentGateway,
) -> TicketingService:
    return TicketingService(
        store=store,
        catalog=catalog,
        payments=payments,
        codec=QRPayloadCodec(settings.qr_signing_key.get_secret_value()),
        id_generator=TicketIdGenerator(
            brand=settings.ticket_brand, algorithm=settings.ticket_digest_algorithm
        ),
        calculator=CommissionCalculator(settings.commission_rate),
        fee_schedule=PaymentFeeSchedule(enabled=settings.payment_fees_enabled),
        allocation=CommissionAllocation(settings.commission_allocation),
        notifier=LoggingNotifier(),
        reconciliation=LoggingReconciliationSink(),
        metrics=metrics_registry,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.metrics_registry = metrics_registry

    db_engine = create_async_engine(_to_asyncpg_dsn(settings.postgres_dsn), future=True, pool_pre_ping=True)
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    store = SqlTicketStore(session_factory, engine=db_engine)
    payments = build_payment_gateway(settings)
    try:
        if settings.create_schema_on_startup:
            await store.ensure_schema()
        app.state.db_engine = db_engine
        app.state.ticketing_service = build_ticketing_service(
            settings, store=store, catalog=SqlEventCatalog(session_factory), payments=payments
        )
        logger.info(
            "Ticketing service ready (payments=%s, commission=%s, allocation=%s)",
            settings.payment_provider,
            settings.commission_rate,
            settings.commission_allocation,
        )
        yield
    finally:
        if isinstance(payments, HttpPaymentGateway):
            await payments.aclose()
        await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RBACMiddleware)
    app.include_router(ping.router)
    app.include_router(purchases.router)
    app.include_router(tickets.router)
    app.include_router(scans.router)
    app.include_router(revenue.router)
    app.include_router(metrics.router)
    return app


app = create_app()
