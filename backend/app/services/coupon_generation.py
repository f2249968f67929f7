"""Bulk coupon generation.

A run creates ``quantity`` coupons one after another. Candidate codes are checked
against the codes that already exist in the store and the codes created earlier
in the same run; a duplicate reported by the store is retried with a new code.
No single failure stops the batch: every unit ends as a ``Created`` or
``Failed`` outcome.
"""

from __future__ import annotations

import json
import logging
import random
import time
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.services import coupon_codes
from app.services.bigcommerce import BigCommerceClient
from app.services.dates import resolve_expiry

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 100
MAX_CREATE_ATTEMPTS = 10

STATUS_CREATED = "Created"
STATUS_FAILED = "Failed"


@dataclass(frozen=True)
class GenerationRequest:
    quantity: int
    code_prefix: str
    name_prefix: str
    target_ids: list[int]
    targeting: str = "products"
    discount: float = 100
    max_uses_per_customer: int = 1
    min_purchase: float = 0
    max_uses: int | None = None
    expiry_date: str | None = None


@dataclass
class CouponOutcome:
    code: str
    name: str
    status: str
    created_at: str
    id: int | None = None
    error: str | None = None

    @property
    def created(self) -> bool:
        return self.status == STATUS_CREATED

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.error is None:
            data.pop("error")
        if self.id is None:
            data.pop("id")
        return data


@dataclass
class GenerationContext:
    """State owned by a single generation run."""

    existing_codes: set[str] = field(default_factory=set)
    generated_codes: set[str] = field(default_factory=set)
    results: list[CouponOutcome] = field(default_factory=list)
    created_count: int = 0
    failed_count: int = 0

    def __contains__(self, code: object) -> bool:
        return code in self.existing_codes or code in self.generated_codes

    def record_created(self, outcome: CouponOutcome) -> None:
        self.generated_codes.add(outcome.code)
        self.existing_codes.add(outcome.code)
        self.results.append(outcome)
        self.created_count += 1

    def record_failed(self, outcome: CouponOutcome) -> None:
        self.results.append(outcome)
        self.failed_count += 1

    def stats(self) -> dict[str, int]:
        return {"created": self.created_count, "failed": self.failed_count, "total": len(self.results)}


@dataclass(frozen=True)
class GenerationEvent:
    type: str
    payload: dict[str, Any]

    @classmethod
    def result(cls, outcome: CouponOutcome) -> GenerationEvent:
        return cls(type="result", payload={"data": outcome.as_dict()})

    @classmethod
    def complete(cls, context: GenerationContext, *, filename: str | None, download_url: str | None) -> GenerationEvent:
        stats: dict[str, Any] = {**context.stats(), "filename": filename, "downloadUrl": download_url}
        return cls(type="complete", payload={"stats": stats})

    def to_sse(self) -> str:
        return f"data: {json.dumps({'type': self.type, **self.payload}, ensure_ascii=False)}\n\n"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def seed_context(client: BigCommerceClient) -> GenerationContext:
    coupons = await client.get_coupons()
    codes = {str(c["code"]) for c in coupons if c.get("code")}
    logger.info("existing_coupons_loaded", extra={"count": len(codes)})
    return GenerationContext(existing_codes=codes)


def _unique_candidate(prefix: str, context: GenerationContext, rng: random.Random | None) -> str | None:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = coupon_codes.generate_code(prefix, rng)
        if code not in context:
            return code
    return None


async def iter_generation(
    client: BigCommerceClient,
    request: GenerationRequest,
    context: GenerationContext,
    *,
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.time,
) -> AsyncIterator[CouponOutcome]:
    """Create the requested coupons in order, yielding one outcome per unit."""
    expires = resolve_expiry(request.expiry_date)
    total = request.quantity

    for index in range(1, total + 1):
        name = coupon_codes.generate_name(request.name_prefix, index, total)
        code = _unique_candidate(request.code_prefix, context, rng)
        if code is None:
            outcome = CouponOutcome(
                code="",
                name=name,
                status=STATUS_FAILED,
                created_at=_utc_now_iso(),
                error=f"Could not generate unique code after {MAX_CODE_ATTEMPTS} attempts",
            )
            logger.warning("coupon_code_exhausted", extra={"coupon_name": name})
            context.record_failed(outcome)
            yield outcome
            continue

        timestamp_fragment = int(clock() * 1000) % 10000
        outcome = None
        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            payload = coupon_codes.build_coupon_payload(
                code,
                name,
                amount=request.discount,
                expires=expires,
                target_ids=request.target_ids,
                entity=request.targeting,
                max_uses_per_customer=request.max_uses_per_customer,
                min_purchase=request.min_purchase,
                max_uses=request.max_uses,
            )
            result = await client.create_coupon(payload)
            await client.pause()

            if result.ok:
                coupon_id = (result.data or {}).get("id")
                outcome = CouponOutcome(code=code, name=name, status=STATUS_CREATED, created_at=_utc_now_iso(), id=coupon_id)
                context.record_created(outcome)
                logger.info("coupon_created", extra={"code": code, "coupon_name": name, "coupon_id": coupon_id})
                break

            if result.is_duplicate:
                code = coupon_codes.conflict_retry_code(request.code_prefix, timestamp_fragment, attempt, context, rng)
                logger.info("coupon_code_conflict_retry", extra={"attempt": attempt, "next_code": code})
                continue

            outcome = CouponOutcome(
                code=code, name=name, status=STATUS_FAILED, created_at=_utc_now_iso(), error=result.error
            )
            context.record_failed(outcome)
            logger.warning("coupon_create_failed", extra={"code": code, "error": result.error})
            break

        if outcome is None:
            outcome = CouponOutcome(
                code=code, name=name, status=STATUS_FAILED, created_at=_utc_now_iso(), error="Max retries exceeded"
            )
            context.record_failed(outcome)
            logger.warning("coupon_create_retries_exhausted", extra={"code": code, "attempts": MAX_CREATE_ATTEMPTS})
        yield outcome


async def run_generation(
    client: BigCommerceClient,
    request: GenerationRequest,
    *,
    rng: random.Random | None = None,
    on_outcome: Callable[[CouponOutcome], None] | None = None,
) -> GenerationContext:
    context = await seed_context(client)
    async for outcome in iter_generation(client, request, context, rng=rng):
        if on_outcome is not None:
            on_outcome(outcome)
    logger.info(
        "coupon_generation_finished",
        extra={"created_count": context.created_count, "failed_count": context.failed_count},
    )
    return context


def outcome_rows(outcomes: Iterable[CouponOutcome]) -> list[dict[str, Any]]:
    return [asdict(outcome) for outcome in outcomes]
