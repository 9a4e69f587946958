import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from loyalty.api.routes.claim import router as claim_router
from loyalty.api.routes.health import router as health_router
from loyalty.api.routes.internal_campaigns import router as internal_campaigns_router
from loyalty.api.routes.internal_claims import router as internal_claims_router
from loyalty.api.routes.internal_members import router as internal_members_router
from loyalty.api.routes.pos import router as pos_router
from loyalty.core.config import get_settings
from loyalty.core.logging import configure_logging
from loyalty.core.request_context import TraceIdMiddleware


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "detail": {
                "code": "VALIDATION_ERROR",
                "message": "Request payload is invalid",
                "errors": jsonable_encoder(exc.errors()),
            }
        },
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Loyalty Ledger API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.add_middleware(TraceIdMiddleware)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(health_router)
    app.include_router(pos_router)
    app.include_router(claim_router)
    app.include_router(internal_claims_router)
    app.include_router(internal_members_router)
    app.include_router(internal_campaigns_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "loyalty.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
