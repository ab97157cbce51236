"""API service for media generation tasks."""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from services.api.middleware import CorrelationIdMiddleware
from services.api.routes.generation import router as generation_router
from services.engine.client import ComfyUIClient
from services.queue.queue_service import GenerationQueueService
from shared.logging_config import setup_logging


def create_app(queue_service: Optional[GenerationQueueService] = None) -> FastAPI:
    """Builds the app; the queue service polls for the lifetime of the app"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = app.state.queue_service
        if service is None:
            service = GenerationQueueService(ComfyUIClient())
            app.state.queue_service = service
        service.start()
        try:
            yield
        finally:
            service.close()

    app = FastAPI(title="Media Generation Queue API", version="1.0.0", lifespan=lifespan)
    app.state.queue_service = queue_service
    app.add_middleware(CorrelationIdMiddleware)
    app.include_router(generation_router, tags=["Generation"])

    @app.get("/")
    async def root():
        return {"service": "api", "status": "running"}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


setup_logging("api")
app = create_app()
