"""FastAPI application entrypoint."""

import logging

from fastapi import FastAPI

from src.core.config import settings
from src.core.exceptions import register_exception_handlers
from src.modules.bookings.router import ops_router
from src.modules.bookings.router import router as booking_requests_router
from src.modules.reviews.router import clinic_router as clinic_reviews_router
from src.modules.reviews.router import eligibility_router as review_eligibility_router
from src.modules.reviews.router import router as reviews_router
from src.modules.users.router import router as users_router

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version="0.1.0",
    )
    register_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(users_router)
    app.include_router(booking_requests_router)
    app.include_router(review_eligibility_router)
    app.include_router(reviews_router)
    app.include_router(clinic_reviews_router)
    app.include_router(ops_router)

    logger.info(
        "%s ready (SLA budget %.1fh, timezone %s)",
        settings.app_name,
        settings.sla_response_hours,
        settings.default_timezone,
    )
    return app


app = create_app()
