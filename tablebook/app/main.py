from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tablebook.app.core import redis_client as redis_module
from tablebook.app.core.config import settings
from tablebook.app.core.logging_config import setup_logging
from tablebook.app.core.redis_client import close_redis, init_redis
from tablebook.app.db.memory import InMemoryReservationStore
from tablebook.app.db.session import build_engine, build_sessionmaker
from tablebook.app.db.sql import SqlReservationStore
from tablebook.app.services.idempotency import RedisBindings
from tablebook.app.services.reservations import ReservationEngine
import tablebook.app.routers.availability as availability
import tablebook.app.routers.reservations as reservations
import tablebook.app.routers.restaurants as restaurants


logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_redis()
    db_engine = None
    if settings.DATABASE_URL:
        db_engine = build_engine(settings.DATABASE_URL)
        store = SqlReservationStore(build_sessionmaker(db_engine))
    else:
        logger.warning("DATABASE_URL not set, using the in-memory reservation store")
        store = InMemoryReservationStore()

    bindings = None
    if redis_module.redis_client is not None:
        bindings = RedisBindings(redis_module.redis_client)

    app.state.engine = ReservationEngine(
        store,
        bindings=bindings,
        booking_timeout=settings.BOOKING_TIMEOUT_SECONDS,
    )
    logger.info("Reservation engine ready")
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        await close_redis()


app = FastAPI(
    title="Tablebook Reservations API",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def invalid_params_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"error": "invalid_params", "detail": jsonable_encoder(exc.errors())}},
    )


app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(reservations.router, prefix=settings.API_PREFIX)
app.include_router(restaurants.router, prefix=settings.API_PREFIX)
