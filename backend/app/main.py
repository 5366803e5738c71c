import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.exceptions import WeatherServiceError
from app.services.rate_limiter import limiter

logger = logging.getLogger(__name__)


def setup_logging():
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    from app.tasks.scheduler import start_scheduler, stop_scheduler
    start_scheduler()
    logger.info("Environment: %s", settings.environment)
    logger.info("Allowed origins: %s", settings.cors_origin_list)
    yield
    stop_scheduler()


app = FastAPI(
    title="Weather Dashboard",
    description="OpenWeatherMap proxy with threshold-based weather alerts",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def rate_limit(request: Request, call_next):
    if not request.url.path.startswith("/api/") or request.method == "OPTIONS":
        return await call_next(request)

    client = request.client.host if request.client else "unknown"
    if not limiter.hit(client):
        logger.warning("Rate limit exceeded for %s", client)
        return JSONResponse(
            status_code=429,
            content={"error": "Trop de requêtes, veuillez réessayer plus tard."},
            headers={"RateLimit-Limit": str(limiter.max_requests), "RateLimit-Remaining": "0"},
        )
    response = await call_next(request)
    response.headers["RateLimit-Limit"] = str(limiter.max_requests)
    response.headers["RateLimit-Remaining"] = str(limiter.remaining(client))
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(
        "%s %s (origin=%s)",
        request.method, request.url.path, request.headers.get("origin"),
    )
    return await call_next(request)


@app.exception_handler(WeatherServiceError)
async def weather_service_error_handler(request: Request, exc: WeatherServiceError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
    logger.info("Rejected request %s %s: invalid %s", request.method, request.url.path, fields)
    return JSONResponse(
        status_code=400,
        content={"error": "Paramètres de requête invalides", "fields": fields},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse(
            status_code=404,
            content={"error": "Route non trouvée", "path": request.url.path, "method": request.method},
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Une erreur est survenue sur le serveur",
            "details": str(exc) if settings.is_development else None,
        },
    )


from app.routers import radar, weather  # noqa: E402

app.include_router(weather.router, prefix="/api")
app.include_router(radar.router, prefix="/api")


@app.get("/api/health")
async def health():
    from app.services import weather_cache
    from app.tasks.scheduler import is_running
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "scheduler": is_running(),
        "cache": weather_cache.stats(),
    }


@app.get("/api/test")
async def api_test():
    return {"status": "ok", "message": "API fonctionnelle"}
