import logging
from collections.abc import AsyncIterator
from functools import partial
from pathlib import Path

import anyio
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse

from app.core.dependencies import ClientFactory, get_client_factory, get_export_dir
from app.schemas.coupons import (
    CouponListResponse,
    CouponSummary,
    CreateSingleCouponRequest,
    CreateSingleCouponResponse,
    GenerateCouponsRequest,
)
from app.services import exporter
from app.services.coupon_codes import build_coupon_payload
from app.services.coupon_generation import GenerationEvent, GenerationRequest, iter_generation, seed_context
from app.services.dates import resolve_expiry

router = APIRouter(tags=["coupons"])
logger = logging.getLogger(__name__)


async def _coupon_list(client_factory: ClientFactory):
    try:
        async with client_factory() as client:
            coupons = await client.get_coupons()
        summaries = [CouponSummary.model_validate(c) for c in coupons]
    except Exception as exc:
        logger.exception("coupon_list_failed")
        return JSONResponse(status_code=500, content={"success": False, "message": str(exc)})
    return CouponListResponse(coupons=summaries)


@router.get("/existing-coupons", response_model=CouponListResponse)
async def list_existing_coupons(client_factory: ClientFactory = Depends(get_client_factory)):
    return await _coupon_list(client_factory)


@router.get("/coupons", response_model=CouponListResponse)
async def list_coupons(client_factory: ClientFactory = Depends(get_client_factory)):
    return await _coupon_list(client_factory)


async def _generation_stream(
    client_factory: ClientFactory,
    request: GenerationRequest,
    export_dir: Path,
) -> AsyncIterator[str]:
    try:
        async with client_factory() as client:
            context = await seed_context(client)
            async for outcome in iter_generation(client, request, context):
                yield GenerationEvent.result(outcome).to_sse()
        path = await anyio.to_thread.run_sync(partial(exporter.export_generation_results, context.results, export_dir))
    except Exception as exc:
        logger.exception("coupon_generation_failed")
        yield GenerationEvent(type="error", payload={"message": str(exc)}).to_sse()
        return

    logger.info(
        "coupon_generation_exported",
        extra={"export_file": path.name, "created_count": context.created_count, "failed_count": context.failed_count},
    )
    yield GenerationEvent.complete(context, filename=path.name, download_url=f"/{path.name}").to_sse()


@router.post("/generate-coupons")
async def generate_coupons(
    payload: GenerateCouponsRequest,
    client_factory: ClientFactory = Depends(get_client_factory),
    export_dir: Path = Depends(get_export_dir),
) -> StreamingResponse:
    request = GenerationRequest(
        quantity=payload.quantity,
        code_prefix=payload.code_prefix,
        name_prefix=payload.name_prefix,
        target_ids=list(payload.product_ids),
        targeting=payload.targeting,
        discount=payload.discount,
        max_uses_per_customer=payload.max_uses_per_customer,
        min_purchase=payload.min_purchase,
        max_uses=payload.max_uses,
        expiry_date=payload.expiry_date,
    )
    logger.info(
        "coupon_generation_requested",
        extra={
            "quantity": request.quantity,
            "code_prefix": request.code_prefix,
            "targeting": request.targeting,
            "target_ids": request.target_ids,
        },
    )
    return StreamingResponse(
        _generation_stream(client_factory, request, export_dir),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/create-single-coupon", response_model=CreateSingleCouponResponse)
async def create_single_coupon(
    payload: CreateSingleCouponRequest,
    client_factory: ClientFactory = Depends(get_client_factory),
):
    coupon_payload = build_coupon_payload(
        payload.code,
        payload.name or payload.code,
        amount=payload.discount,
        expires=resolve_expiry(payload.expiry_date),
        target_ids=payload.product_ids,
        entity=payload.targeting,
        max_uses_per_customer=payload.max_uses_per_customer,
        min_purchase=payload.min_purchase,
        max_uses=payload.max_uses,
    )
    try:
        async with client_factory() as client:
            result = await client.create_coupon(coupon_payload)
    except Exception as exc:
        logger.exception("coupon_create_failed")
        return JSONResponse(status_code=500, content={"success": False, "message": str(exc)})

    if not result.ok:
        logger.warning("coupon_create_rejected", extra={"code": payload.code, "error": result.error})
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"success": False, "message": result.error})

    logger.info("coupon_created", extra={"code": payload.code, "coupon_id": (result.data or {}).get("id")})
    return CreateSingleCouponResponse(coupon=result.data or {})
