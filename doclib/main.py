from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from doclib.api.favorites import router as favorites_router
from doclib.api.file_requests import router as file_requests_router
from doclib.api.files import router as files_router
from doclib.api.hierarchy import router as hierarchy_router
from doclib.errors import register_error_handlers
from doclib.logging import configure_logging

app = FastAPI(title="Document Library API")

configure_logging()
register_error_handlers(app)


def _include_api_router(router, dependencies=None):
    app.include_router(router, dependencies=dependencies)
    app.include_router(router, prefix="/api/v1", dependencies=dependencies)


_include_api_router(hierarchy_router)
_include_api_router(files_router)
_include_api_router(file_requests_router)
_include_api_router(favorites_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
