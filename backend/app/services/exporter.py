from __future__ import annotations

import csv
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook

from app.services.coupon_generation import CouponOutcome

GENERATED_SHEET_TITLE = "Generated Coupons"
ALL_COUPONS_SHEET_TITLE = "All Coupons"
REPORT_SHEET_TITLE = "Coupon Report"

GENERATED_COLUMNS = ["code", "name", "id", "status", "error", "created_at"]
EXPORT_COLUMNS = [
    "id",
    "code",
    "name",
    "type",
    "amount",
    "min_purchase",
    "max_uses",
    "max_uses_per_customer",
    "num_uses",
    "enabled",
    "expires",
    "date_created",
    "applies_to_entity",
    "applies_to_ids",
    "restricted_to",
    "shipping_methods",
]

GENERATED_FILENAME_RE = re.compile(r"^generated-coupons-\d{4}-\d{2}-\d{2}-\d+\.xlsx$")


def _columns_for(rows: Sequence[Mapping[str, Any]], columns: Sequence[str] | None) -> list[str]:
    if columns is not None:
        return list(columns)
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def _cell(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool, datetime)):
        return value
    return str(value)


def write_xlsx(
    rows: Sequence[Mapping[str, Any]],
    path: Path,
    *,
    sheet_title: str = "Sheet1",
    columns: Sequence[str] | None = None,
) -> Path:
    header = _columns_for(rows, columns)
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title
    ws.append(header)
    for row in rows:
        ws.append([_cell(row.get(col)) for col in header])
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path


def write_csv(rows: Sequence[Mapping[str, Any]], path: Path, *, columns: Sequence[str] | None = None) -> Path:
    header = _columns_for(rows, columns)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(header)
        for row in rows:
            writer.writerow(["" if row.get(col) is None else row.get(col) for col in header])
    return path


def write_table(rows: Sequence[Mapping[str, Any]], path: Path, *, sheet_title: str, columns: Sequence[str] | None = None) -> Path:
    if path.suffix.lower() == ".csv":
        return write_csv(rows, path, columns=columns)
    return write_xlsx(rows, path, sheet_title=sheet_title, columns=columns)


def generated_export_filename(now: datetime | None = None) -> str:
    current = now or datetime.now(timezone.utc)
    return f"generated-coupons-{current:%Y-%m-%d}-{int(current.timestamp() * 1000)}.xlsx"


def all_coupons_export_filename(now: datetime | None = None) -> str:
    current = now or datetime.now(timezone.utc)
    return f"all-coupons-export-{current:%Y-%m-%d}_{int(current.timestamp() * 1000)}.csv"


def export_generation_results(outcomes: Iterable[CouponOutcome], directory: Path, *, now: datetime | None = None) -> Path:
    rows = [outcome.as_dict() for outcome in outcomes]
    return write_xlsx(
        rows,
        directory / generated_export_filename(now),
        sheet_title=GENERATED_SHEET_TITLE,
        columns=GENERATED_COLUMNS,
    )


def _joined(values: Any, sep: str) -> str:
    if not values:
        return ""
    return sep.join(str(v) for v in values)


def format_coupon_for_export(coupon: Mapping[str, Any]) -> dict[str, Any]:
    applies_to = coupon.get("applies_to") or {}
    return {
        "id": coupon.get("id"),
        "code": coupon.get("code"),
        "name": coupon.get("name") or "",
        "type": coupon.get("type") or "",
        "amount": coupon.get("amount") or "",
        "min_purchase": coupon.get("min_purchase") or "",
        "max_uses": coupon.get("max_uses") or "",
        "max_uses_per_customer": coupon.get("max_uses_per_customer") or "",
        "num_uses": coupon.get("num_uses") or 0,
        "enabled": coupon.get("enabled"),
        "expires": coupon.get("expires") or "",
        "date_created": coupon.get("date_created") or "",
        "applies_to_entity": applies_to.get("entity") or "",
        "applies_to_ids": _joined(applies_to.get("ids"), "; "),
        "restricted_to": _joined(coupon.get("restricted_to"), "; "),
        "shipping_methods": _joined(coupon.get("shipping_methods"), "; "),
    }


def _parse_expires(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(str(value))
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def coupon_status(coupon: Mapping[str, Any], now: datetime) -> str:
    expires_at = _parse_expires(coupon.get("expires"))
    if expires_at is not None and expires_at < now:
        return "Expired"
    return "Active" if coupon.get("enabled") else "Disabled"


def format_coupon_report_row(code: str, coupon: Mapping[str, Any] | None, now: datetime | None = None) -> dict[str, Any]:
    if coupon is None:
        return {"Coupon Code": code, "Exists": "No", "Status": "Not Found"}

    current = now or datetime.now(timezone.utc)
    applies_to = coupon.get("applies_to") or {}
    num_uses = coupon.get("num_uses") or 0
    return {
        "Coupon Code": coupon.get("code"),
        "ID": coupon.get("id"),
        "Name": coupon.get("name"),
        "Type": coupon.get("type"),
        "Amount": coupon.get("amount"),
        "Min Purchase": coupon.get("min_purchase"),
        "Max Uses": coupon.get("max_uses") or "Unlimited",
        "Max Uses Per Customer": coupon.get("max_uses_per_customer") or "Unlimited",
        "Times Used": num_uses,
        "Used": "Yes" if num_uses > 0 else "No",
        "Expires": coupon.get("expires") or "No Expiry",
        "Status": coupon_status(coupon, current),
        "Applies To Entity": applies_to.get("entity") or "All",
        "Applies To IDs": _joined(applies_to.get("ids"), ", ") or "All",
        "Restricted To": _joined(coupon.get("restricted_to"), ", ") or "None",
        "Shipping Methods": _joined(coupon.get("shipping_methods"), ", ") or "All",
        "Date Created": coupon.get("date_created"),
    }


def read_coupon_codes(path: Path, *, column: str = "Coupon Code") -> list[str]:
    """Read the non-blank values of ``column`` from a .xlsx or .csv file."""
    if not path.is_file():
        raise FileNotFoundError(f"Input file not found: {path}")

    if path.suffix.lower() == ".csv":
        with path.open(newline="", encoding="utf-8-sig") as handle:
            reader = csv.DictReader(handle)
            if column not in (reader.fieldnames or []):
                raise ValueError(f"Column {column!r} not found in {path.name}")
            values = [row.get(column) for row in reader]
    else:
        wb = load_workbook(path, read_only=True, data_only=True)
        try:
            rows = wb.worksheets[0].iter_rows(values_only=True)
            header = [str(h).strip() if h is not None else "" for h in next(rows, ())]
            if column not in header:
                raise ValueError(f"Column {column!r} not found in {path.name}")
            idx = header.index(column)
            values = [row[idx] if idx < len(row) else None for row in rows]
        finally:
            wb.close()

    codes = [str(v).strip() for v in values if v is not None]
    return [code for code in codes if code]
