from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import os
import uvicorn

import models
import auth_service
import routes_bookings
import routes_food
import routes_payments
import routes_reservations
import routes_rooms
import routes_staff
import routes_tables
from database import engine, get_db, init_default_admin, wait_for_db
from errors import ServiceError
from redis_client import redis_client

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("HotelAPI")

app = FastAPI(title="Hotel & Restaurant Booking API")

DEFAULT_ORIGINS = [
    "http://localhost",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8080",
]
origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()] or DEFAULT_ORIGINS

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.kind.value}: {exc.message}")
    return error_response(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return error_response(400, "Invalid request")
    first = errors[0]
    message = str(first.get("msg", "Invalid request"))
    # pydantic добавляет префикс к ошибкам из @validator
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if field and first.get("type") in ("missing", "value_error.missing"):
        message = f"{field} is required"
    return error_response(400, message)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(500, "Internal server error")


@app.on_event("startup")
def startup_event():
    # Сначала дожидаемся готовности базы данных
    if wait_for_db():
        try:
            logger.info("Creating database tables...")
            models.Base.metadata.create_all(bind=engine)
            init_default_admin()
            logger.info("Database initialized")
        except SQLAlchemyError as e:
            logger.error(f"Error while initializing the database: {e}")
    else:
        logger.error("Database did not become ready during startup")

    # После БД проверяем доступность Redis
    if redis_client.is_available():
        logger.info("Redis is available")
    else:
        logger.warning("Redis is unavailable, caching and rate limiting are disabled")


@app.get("/")
def read_root():
    return {"message": "Hotel & Restaurant Booking API is working!"}


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.warning(f"Health check: database error: {e}")
        database = "error"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "message": "API is running",
        "database": database,
        "redis": "ok" if redis_client.is_available() else "unavailable",
    }


@app.get("/cache/info")
def get_cache_info():
    """Получить информацию о состоянии кеша"""
    return redis_client.get_cache_info()


app.include_router(auth_service.router)
app.include_router(routes_rooms.router)
app.include_router(routes_tables.router)
app.include_router(routes_food.router)
app.include_router(routes_staff.router)
app.include_router(routes_bookings.router)
app.include_router(routes_reservations.router)
app.include_router(routes_payments.router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
