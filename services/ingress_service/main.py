from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from typing import List, Optional
import logging
import sys

import uvicorn

from ..common.config import IngressSettings, load_settings
from ..common.errors import ConfigurationMissing, PayloadTooLarge
from ..common.job_queue import PubSubPublisher
from ..common.models import ErrorResponse, PartStatus, UploadPart, UploadResponse
from ..common.object_store import GCSObjectStore
from .services.ingress import IngressService

logger = logging.getLogger(__name__)

ERROR_CATEGORIES = {
    status.HTTP_400_BAD_REQUEST: "bad_request",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_413_CONTENT_TOO_LARGE: "payload_too_large",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "internal_error",
}


def _error_response(status_code: int, message: str) -> JSONResponse:
    body = ErrorResponse(error=ERROR_CATEGORIES.get(status_code, "http_error"), message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def upload_status_code(response: UploadResponse) -> int:
    """Coarse HTTP status for a batch of per-part outcomes"""
    if response.failed == 0:
        return status.HTTP_200_OK
    if response.stored > 0:
        return status.HTTP_207_MULTI_STATUS

    failed = [p for p in response.parts if p.status == PartStatus.FAILED]
    if all(p.error and p.error.code == "MISSING_FILENAME" for p in failed):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def build_ingress_service(settings: IngressSettings) -> IngressService:
    store = GCSObjectStore(settings.google_cloud_project)
    queue = PubSubPublisher(
        settings.google_cloud_project,
        settings.pubsub_topic,
        timeout_seconds=settings.publish_timeout_seconds,
    )
    return IngressService(settings, store, queue)


def create_app(
    settings: Optional[IngressSettings] = None,
    ingress_service: Optional[IngressService] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Starting Ingress Service...")

        if app.state.ingress_service is None:
            app_settings = settings or load_settings(IngressSettings)
            app.state.ingress_service = build_ingress_service(app_settings)

        logger.info(
            f"Ingress Service started, storing into "
            f"container {app.state.ingress_service.container}"
        )

        yield

        # Shutdown
        logger.info("Ingress Service shutdown complete")

    app = FastAPI(
        title="Ingress Service",
        description="Accepts image uploads and queues thumbnail jobs",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.ingress_service = ingress_service

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(PayloadTooLarge)
    async def payload_too_large_handler(request: Request, exc: PayloadTooLarge):
        return _error_response(exc.http_status, exc.message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error: {str(exc)}")
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")

    # Health check
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "ingress-service"}

    @app.post("/upload", response_model=UploadResponse)
    async def upload(request: Request):
        """Store every uploaded part and queue a thumbnail job for each"""
        service: IngressService = request.app.state.ingress_service

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            service.check_size(int(content_length))

        form = await request.form()
        try:
            parts: List[UploadPart] = []
            for name, value in form.multi_items():
                if isinstance(value, UploadFile):
                    parts.append(UploadPart(name=name, filename=value.filename or None, data=await value.read()))
                else:
                    parts.append(UploadPart(name=name, filename=None, data=value.encode("utf-8")))
        finally:
            await form.close()

        response = await service.handle_upload(parts)
        return JSONResponse(
            status_code=upload_status_code(response),
            content=response.model_dump(mode="json"),
        )

    return app


app = create_app()


def run():
    """Entry point for the ingress server"""
    try:
        settings = load_settings(IngressSettings)
    except ConfigurationMissing as e:
        logging.basicConfig(level=logging.INFO)
        logger.critical(e.message)
        sys.exit(1)

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    uvicorn.run(
        create_app(settings=settings),
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    run()
