from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.ai.errors import GenerationError
from app.api.routes import admin, generations, programs, settings as user_settings, topics
from app.config import get_settings
from app.core.exceptions import generation_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler, service_exception_handler
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.services.errors import ServiceError

settings = get_settings()

app = FastAPI(title="Aula Engine", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "x-request-id"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(ServiceError, service_exception_handler)
app.add_exception_handler(GenerationError, generation_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(generations.router, prefix="/v1/generations", tags=["generations"])
app.include_router(topics.router, prefix="/v1/topics", tags=["topics"])
app.include_router(programs.router, prefix="/v1/programs", tags=["programs"])
app.include_router(user_settings.router, prefix="/v1/settings", tags=["settings"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
