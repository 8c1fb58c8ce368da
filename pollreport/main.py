from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from pollreport.api.routes import embed, metrics, models, polls, report, search
from pollreport.config import settings
from pollreport.errors import ConfigurationError, ReportError
from pollreport.services import database as db
from pollreport.services.chart_embed import EMBED_HEADERS
from pollreport.services.logger import logger

REPORT_PATH = "/api/report"
REPORT_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await db.close_pool()


app = FastAPI(
    title="PollReport",
    description="Semantic poll search and AI-written reports grounded in survey data",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def route_headers(request: Request, call_next):
    """Open CORS on the report route and allow framing of the embed views."""
    path = request.url.path.rstrip("/") or "/"
    if path == REPORT_PATH and request.method == "OPTIONS":
        return Response(status_code=204, headers=REPORT_CORS_HEADERS)

    response = await call_next(request)
    if path == REPORT_PATH:
        response.headers.update(REPORT_CORS_HEADERS)
    elif path.startswith("/embed"):
        if "x-frame-options" in response.headers:
            del response.headers["x-frame-options"]
        response.headers.update(EMBED_HEADERS)
    return response


@app.exception_handler(ReportError)
async def report_error_handler(request: Request, exc: ReportError):
    if isinstance(exc, ConfigurationError):
        logger.error(f"CONFIGURATION_ERROR on {request.url.path}: {exc}")
    elif exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse({"error": exc.public_message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": "Invalid request"}, status_code=400)


app.include_router(report.router)
app.include_router(search.router)
app.include_router(polls.router)
app.include_router(metrics.router)
app.include_router(embed.router)
app.include_router(models.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "pollreport"}
