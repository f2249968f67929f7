from fastapi import APIRouter

from app.api.v1 import catalog
from app.api.v1 import coupons
from app.core.config import settings

api_router = APIRouter()

api_router.include_router(catalog.router)
api_router.include_router(coupons.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok", "message": settings.app_name}
