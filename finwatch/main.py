import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from finwatch import config
from finwatch.dependencies import Services
from finwatch.routes.alert_routes import router as alert_router
from finwatch.routes.notification_routes import router as notification_router
from finwatch.routes.receipt_routes import router as receipt_router

logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the API. Services are wired lazily unless passed in."""
    app = FastAPI(title="Finwatch Budget Alerts")
    app.state.services = services

    @app.get("/api/v1/health-check")
    async def health():
        return {"status": "ok", "message": "Backend is alive!"}

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(alert_router)
    app.include_router(receipt_router)
    app.include_router(notification_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("finwatch.main:app", host="0.0.0.0", port=8000, reload=True)
