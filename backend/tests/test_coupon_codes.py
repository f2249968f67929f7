import random
import re

from app.services import coupon_codes


def test_generate_code_shape() -> None:
    rng = random.Random(7)
    for prefix in ["", "A", "GETLINKED", "summer-"]:
        for _ in range(50):
            code = coupon_codes.generate_code(prefix, rng)
            assert code.startswith(prefix)
            assert len(code) == len(prefix) + 3 + 6
            assert re.fullmatch(r"\d{3}[0-9A-Z]{6}", code[len(prefix) :])


def test_generate_code_uses_module_random_by_default() -> None:
    code = coupon_codes.generate_code("GETLINKED")
    assert code.startswith("GETLINKED")
    assert len(code) == len("GETLINKED") + 9


def test_generate_name_is_one_based_sequence() -> None:
    assert coupon_codes.generate_name("SHOPIFY 100 OFF", 2, 500) == "SHOPIFY 100 OFF 2 of 500"
    for i in range(1, 5):
        assert coupon_codes.generate_name("P", i, 4) == f"P {i} of 4"


def test_conflict_retry_code_format_and_fallback() -> None:
    code = coupon_codes.conflict_retry_code("GET", 4821, 3, set(), random.Random(1))
    assert re.fullmatch(r"GET48213[0-9A-Z]{4}", code)

    taken = {code}
    fallback = coupon_codes.conflict_retry_code("GET", 4821, 3, taken, random.Random(1))
    assert fallback == "GETX" + code[len("GET") :]


def test_build_coupon_payload_fields() -> None:
    payload = coupon_codes.build_coupon_payload(
        "GET001ABCDEF",
        "Promo 1 of 2",
        amount=100,
        expires="Thu, 15 Jan 2026 23:59:59 GMT",
        target_ids=[111, 222],
        entity="categories",
        max_uses_per_customer=2,
        min_purchase=10,
    )
    assert payload == {
        "code": "GET001ABCDEF",
        "name": "Promo 1 of 2",
        "type": "percentage_discount",
        "amount": 100,
        "enabled": True,
        "max_uses_per_customer": 2,
        "min_purchase": 10,
        "expires": "Thu, 15 Jan 2026 23:59:59 GMT",
        "applies_to": {"entity": "categories", "ids": [111, 222]},
    }

    with_limit = coupon_codes.build_coupon_payload("C", "N", amount=5, expires="x", target_ids=(1,), max_uses=50)
    assert with_limit["max_uses"] == 50
    assert with_limit["applies_to"] == {"entity": "products", "ids": [1]}
