from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1 import api_router
from app.api.v1 import downloads
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.middleware.request_log import RequestLoggingMiddleware
from app.schemas.error import ErrorResponse


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    tags_metadata = [
        {"name": "catalog", "description": "Store products and categories"},
        {"name": "coupons", "description": "Coupon listing, creation and bulk generation"},
        {"name": "health", "description": "Liveness probe"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api")
    # Catch-all file route, registered last so API paths win.
    app.include_router(downloads.router)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=None)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload.model_dump()))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump())

    return app


app = get_application()
