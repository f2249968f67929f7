import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.dependencies import ClientFactory, get_client_factory
from app.schemas.catalog import CatalogEntry, CatalogResponse

router = APIRouter(tags=["catalog"])
logger = logging.getLogger(__name__)


@router.get("/products", response_model=CatalogResponse)
async def list_products_and_categories(client_factory: ClientFactory = Depends(get_client_factory)):
    try:
        async with client_factory() as client:
            products = await client.get_products()
            categories = await client.get_categories()
        response = CatalogResponse(
            products=[CatalogEntry(id=p["id"], name=p.get("name")) for p in products],
            categories=[CatalogEntry(id=c["id"], name=c.get("name")) for c in categories],
        )
    except Exception as exc:
        logger.exception("catalog_fetch_failed")
        return JSONResponse(status_code=500, content={"success": False, "message": str(exc)})

    logger.info("catalog_fetched", extra={"products": len(products), "categories": len(categories)})
    return response
