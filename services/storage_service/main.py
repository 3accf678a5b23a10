import os

from fastapi import FastAPI

from .src.routers import downloads, lifecycle, uploads
from .src.config import settings
from .otel import init_tracing

app = FastAPI(title="Storage Service API", version="1.0.0")

# Routers
app.include_router(lifecycle.router, prefix="/api/v1")
app.include_router(uploads.router, prefix="/api/v1")
app.include_router(downloads.router, prefix="/api/v1")

os.environ.setdefault("SERVICE_NAME", settings.service_name)
tracer = init_tracing(app, service_name=settings.service_name, service_version="v1")

@app.get("/health")
def health():
    return {"status": "ok", "service": settings.service_name}
