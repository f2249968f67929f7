from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import settings

TargetEntity = Literal["products", "categories"]


class CouponSummary(BaseModel):
    id: int | None = None
    code: str | None = None
    name: str | None = None
    type: str | None = None
    amount: Any = None
    enabled: bool | None = None
    date_created: str | None = None


class CouponListResponse(BaseModel):
    success: bool = True
    coupons: list[CouponSummary] = Field(default_factory=list)


class GenerateCouponsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quantity: int = Field(ge=1, le=settings.max_generate_quantity)
    code_prefix: str = Field(alias="codePrefix", min_length=1, max_length=40)
    name_prefix: str = Field(alias="namePrefix", min_length=1, max_length=100)
    product_ids: list[int] = Field(alias="productIds", min_length=1)
    targeting: TargetEntity = "products"
    discount: float = Field(default=100, ge=0)
    max_uses_per_customer: int = Field(default=1, alias="maxUsesPerCustomer", ge=0)
    max_uses: int | None = Field(default=None, alias="maxUses", ge=0)
    min_purchase: float = Field(default=0, alias="minPurchase", ge=0)
    expiry_date: str | None = Field(default=None, alias="expiryDate")


class CreateSingleCouponRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(min_length=1, max_length=50)
    name: str | None = Field(default=None, max_length=100)
    discount: float = Field(ge=0)
    product_ids: list[int] = Field(alias="productIds", min_length=1)
    targeting: TargetEntity = "products"
    max_uses_per_customer: int = Field(default=1, alias="maxUsesPerCustomer", ge=0)
    max_uses: int | None = Field(default=None, alias="maxUses", ge=0)
    min_purchase: float = Field(default=0, alias="minPurchase", ge=0)
    expiry_date: str | None = Field(default=None, alias="expiryDate")

    @field_validator("expiry_date")
    @classmethod
    def validate_expiry_date(cls, value: str | None) -> str | None:
        cleaned = (value or "").strip()
        if not cleaned:
            return None
        try:
            date.fromisoformat(cleaned)
        except ValueError as exc:
            raise ValueError("expiryDate must be a valid YYYY-MM-DD date") from exc
        return cleaned


class CreateSingleCouponResponse(BaseModel):
    success: bool = True
    coupon: dict[str, Any]
    message: str = "Coupon created successfully"
