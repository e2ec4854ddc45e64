import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from database import engine, Base
from exceptions import DispatchError, PersistenceError
from notifications import NotificationRegistry
from routers import drivers, riders, rides
from routing import DirectionsRoutingService, StraightLineRoutingService

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_routing_service(settings):
    if settings.routing_url:
        return DirectionsRoutingService(settings.routing_url, timeout=settings.routing_timeout_seconds)
    logger.info("ROUTING_URL not set; using straight-line routing estimates")
    return StraightLineRoutingService(average_speed_kmh=settings.average_speed_kmh)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    app.state.notifications = NotificationRegistry(settings.notification_queue_size)
    app.state.routing = build_routing_service(settings)
    logger.info("Dispatch service started in %s matching mode", settings.matching_mode)
    yield
    await app.state.routing.aclose()
    app.state.notifications.close()
    await engine.dispose()


app = FastAPI(title="Ride Dispatch", lifespan=lifespan)

app.include_router(riders.router)
app.include_router(drivers.router)
app.include_router(rides.router)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
    )


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in errors
    )
    return error_response(422, "VALIDATION_ERROR", message or "Invalid request")


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    error = PersistenceError()
    return error_response(error.status_code, error.code, error.message)


@app.get("/")
def read_root():
    return {"message": "Ride Dispatch API"}


@app.get("/health")
def health():
    registry = getattr(app.state, "notifications", None)
    return {
        "status": "ok",
        "matching_mode": settings.matching_mode,
        "notification_channels": len(registry.channels()) if registry else 0,
    }
