"""Punto de entrada de la API usando FastAPI.

Este módulo configura el logging, crea la aplicación, configura CORS y
registra el router del filtro de traducción de imágenes.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.filters import router as filters_router
from app.core.config import get_settings
from app.core.logging_config import setup_logging

settings = get_settings()
setup_logging(settings.log_level)

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
)

# CORS configurable via `settings.allowed_origins` (definido en .env)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(o) for o in settings.allowed_origins],
    allow_credentials=settings.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def ensure_cors_header(request: Request, call_next):
    """Fallback middleware that sets the CORS headers dynamically.

    - If `ALLOWED_ORIGINS` contains `*`, respond `Access-Control-Allow-Origin: *`.
    - Otherwise, if Origin is present and in the whitelist, echo it back.
    """
    origin = request.headers.get("origin")
    response = await call_next(request)

    if not origin:
        return response

    allowed = [str(o) for o in settings.allowed_origins]
    if allowed == ["*"]:
        response.headers["Access-Control-Allow-Origin"] = "*"
    elif origin in allowed:
        response.headers["Access-Control-Allow-Origin"] = origin
    else:
        return response

    if settings.allow_credentials:
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response


@app.get("/health")
async def health():
    return {"status": "ok"}


app.include_router(filters_router, prefix="/api/v1")
