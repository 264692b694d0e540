from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from coursemarket.core.config import settings
from coursemarket.middleware.idempotency import install_idempotency
from coursemarket.routers import cart, checkout, coupon_stats, health
from coursemarket.utils.logger import get_logger

from .db import Base, engine

# IMPORTA MODELOS antes de create_all
from .models import cart as _cart_models
from .models import coupon as _coupon_models

log = get_logger("main")

# Crea tablas faltantes (desarrollo)
Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.app_name, version=settings.app_version)

install_idempotency(app)
app.include_router(health.router)
app.include_router(cart.router)
app.include_router(checkout.router)
app.include_router(coupon_stats.router)


def _infrastructure_failure(request: Request, exc: Exception) -> JSONResponse:
    # nada de detalles internos hacia el cliente
    log.error("infrastructure failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "INTERNAL_ERROR"})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    return _infrastructure_failure(request, exc)


@app.exception_handler(RedisError)
async def cache_error_handler(request: Request, exc: RedisError):
    return _infrastructure_failure(request, exc)
