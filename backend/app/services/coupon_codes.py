from __future__ import annotations

import random
import string
from collections.abc import Container, Sequence
from typing import Any

BASE36_ALPHABET = string.digits + string.ascii_uppercase
CODE_NUMBER_DIGITS = 3
CODE_RANDOM_LENGTH = 6
RETRY_RANDOM_LENGTH = 4

COUPON_TYPE_PERCENTAGE = "percentage_discount"
TARGET_ENTITIES = ("products", "categories")


def _base36(rng: random.Random, length: int) -> str:
    return "".join(rng.choice(BASE36_ALPHABET) for _ in range(length))


def generate_code(prefix: str, rng: random.Random | None = None) -> str:
    """Return ``prefix`` + 3 zero-padded digits + 6 uppercase base-36 characters.

    Codes are not cryptographically random; callers check them against the
    codes they already know about.
    """
    rng = rng or random
    number = rng.randrange(10**CODE_NUMBER_DIGITS)
    return f"{prefix}{number:0{CODE_NUMBER_DIGITS}d}{_base36(rng, CODE_RANDOM_LENGTH)}"


def generate_name(prefix: str, index: int, total: int) -> str:
    return f"{prefix} {index} of {total}"


def conflict_retry_code(
    prefix: str,
    timestamp_fragment: int,
    attempt: int,
    taken: Container[str],
    rng: random.Random | None = None,
) -> str:
    """Code used after the store reported a duplicate.

    Mixes a timestamp fragment and the attempt number into the code; when the
    candidate is already known, an ``X`` marker is added once.
    """
    rng = rng or random
    suffix = _base36(rng, RETRY_RANDOM_LENGTH)
    code = f"{prefix}{timestamp_fragment}{attempt}{suffix}"
    if code in taken:
        code = f"{prefix}X{timestamp_fragment}{attempt}{suffix}"
    return code


def build_coupon_payload(
    code: str,
    name: str,
    *,
    amount: float,
    expires: str,
    target_ids: Sequence[int],
    entity: str = "products",
    max_uses_per_customer: int = 1,
    min_purchase: float = 0,
    max_uses: int | None = None,
    coupon_type: str = COUPON_TYPE_PERCENTAGE,
    enabled: bool = True,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": code,
        "name": name,
        "type": coupon_type,
        "amount": amount,
        "enabled": enabled,
        "max_uses_per_customer": max_uses_per_customer,
        "min_purchase": min_purchase,
        "expires": expires,
        "applies_to": {"entity": entity, "ids": list(target_ids)},
    }
    if max_uses is not None:
        payload["max_uses"] = max_uses
    return payload
