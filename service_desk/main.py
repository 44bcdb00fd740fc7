from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker

from service_desk.api.routes import ping, service_requests
from service_desk.audit.recorder import AuditRecorder
from service_desk.catalog.repository import CatalogRepository
from service_desk.core.config import get_settings
from service_desk.core.logging import configure_logging, init_tracer, shutdown_tracer
from service_desk.db.engine import create_engine
from service_desk.identity import ActorDirectory
from service_desk.service_requests.repository import ServiceRequestRepository
from service_desk.service_requests.service import LifecyclePolicy, ServiceRequestLifecycle


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider

    db_engine = create_engine(settings)
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    try:
        audit = AuditRecorder(session_factory)
        repository = ServiceRequestRepository(session_factory, audit=audit, engine=db_engine)
        if settings.create_schema_on_startup:
            await repository.ensure_schema()
        app.state.db_engine = db_engine
        app.state.db_session_factory = session_factory
        app.state.audit_recorder = audit
        app.state.actor_directory = ActorDirectory(session_factory)
        app.state.request_lifecycle = ServiceRequestLifecycle(
            repository,
            CatalogRepository(session_factory),
            policy=LifecyclePolicy.from_settings(settings),
        )
        logger.info("%s started (%s)", settings.app_name, settings.environment)
        yield
    finally:
        app.state.request_lifecycle = None
        await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(service_requests.router)
    return app


app = create_app()
