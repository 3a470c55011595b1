"""HTTP API exposing the scrape service."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import FetchError, InvalidInputError
from .models import ScrapePayload
from .presets import get_preset
from .service import FetchService

logger = structlog.get_logger(__name__)

FETCH_FAILED_MESSAGE = "An error occurred while fetching the page."


def _error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


def create_app(service: FetchService | None = None) -> FastAPI:
    """Build the app; the service is created on first use when not given."""
    app = FastAPI(title="pagefetch")
    app.state.service = service

    def get_service(request: Request) -> FetchService:
        if request.app.state.service is None:
            request.app.state.service = FetchService()
        return request.app.state.service

    @app.get("/health")
    async def health(request: Request):
        try:
            await get_service(request).health_check()
        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            return JSONResponse(status_code=503, content={"status": "unhealthy", "error": str(e)})
        return {"status": "healthy"}

    @app.post("/scrape")
    async def scrape(payload: ScrapePayload, request: Request):
        service = get_service(request)

        try:
            preset = get_preset(payload.preset) if payload.preset else service.preset
        except ValueError as e:
            return _error_response(400, str(e))

        try:
            fetch_request = payload.to_fetch_request(preset)
        except InvalidInputError as e:
            return _error_response(400, str(e))

        try:
            outcome = await service.scrape(fetch_request, preset=preset)
        except FetchError:
            return _error_response(500, FETCH_FAILED_MESSAGE)

        return outcome.to_dict()

    return app


app = create_app()
