import argparse
import asyncio
import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from app.core.config import settings
from app.core.logging_config import configure_logging
from app.services import exporter
from app.services.bigcommerce import BigCommerceClient
from app.services.coupon_generation import GenerationRequest, run_generation
from app.services.dates import to_wire_date

logger = logging.getLogger("app.cli")

ClientFactory = Callable[[], BigCommerceClient]
InputFn = Callable[[str], str]


def _resolve_input_file(raw_path: str) -> Path:
    raw = (raw_path or "").strip()
    if not raw:
        raise SystemExit("Path is required")
    path = Path(raw).expanduser()
    if not path.is_file():
        logger.error("input_file_not_found", extra={"path": str(path)})
        raise SystemExit(f"Input file not found: {path}")
    return path


def _parse_ids(raw: str) -> list[int]:
    try:
        ids = [int(part) for part in raw.replace(";", ",").split(",") if part.strip()]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid id list: {raw!r}") from exc
    if not ids:
        raise argparse.ArgumentTypeError("At least one id is required")
    return ids


def _quantity(raw: str) -> int:
    value = int(raw)
    if not 1 <= value <= settings.max_generate_quantity:
        raise argparse.ArgumentTypeError(f"Quantity must be between 1 and {settings.max_generate_quantity}")
    return value


async def generate_coupons(
    request: GenerationRequest,
    *,
    output_dir: Path,
    client_factory: ClientFactory = BigCommerceClient.from_settings,
) -> Path | None:
    def report(outcome) -> None:
        line = f"{outcome.status}: {outcome.code} ({outcome.name})"
        print(line if outcome.created else f"{line} - {outcome.error}")

    async with client_factory() as client:
        context = await run_generation(client, request, on_outcome=report)

    print(f"Created: {context.created_count}, failed: {context.failed_count}")
    if not context.results:
        return None
    path = exporter.export_generation_results(context.results, output_dir)
    print(f"Exported to: {path}")
    return path


def _load_coupon_file(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error("coupon_file_parse_failed", extra={"path": str(path), "error": str(exc)})
        raise SystemExit(f"Invalid JSON in {path}: {exc}") from exc
    return data if isinstance(data, list) else [data]


async def create_from_file(path: Path, *, client_factory: ClientFactory = BigCommerceClient.from_settings) -> tuple[int, int]:
    coupons = _load_coupon_file(path)
    created = failed = 0
    async with client_factory() as client:
        for index, coupon in enumerate(coupons, start=1):
            print(f"[{index}/{len(coupons)}] Creating: {coupon.get('code')}")
            result = await client.create_coupon(coupon)
            if result.ok:
                created += 1
                print(f"Created (ID: {(result.data or {}).get('id')})")
            else:
                failed += 1
                print(f"Failed: {result.error}")
            await client.pause()
    print(f"Results: {created} created, {failed} failed")
    return created, failed


def _optional_number(raw: str, cast: Callable[[str], Any]) -> Any:
    raw = raw.strip()
    return cast(raw) if raw else None


def prompt_coupon(input_fn: InputFn = input) -> dict[str, Any]:
    coupon: dict[str, Any] = {
        "code": input_fn("Coupon Code: ").strip(),
        "name": input_fn("Coupon Name: ").strip(),
        "type": input_fn("Type (percentage_discount, per_total_discount, ...): ").strip(),
        "amount": float(input_fn("Amount: ")),
    }
    min_purchase = _optional_number(input_fn("Min Purchase (or leave blank): "), float)
    max_uses = _optional_number(input_fn("Max Uses (or leave blank for unlimited): "), int)
    max_uses_per_customer = _optional_number(input_fn("Max Uses Per Customer (or leave blank): "), int)
    expiry = input_fn("Expiry Date (YYYY-MM-DD or leave blank): ").strip()
    coupon["enabled"] = input_fn("Enabled (yes/no): ").strip().lower() == "yes"

    if min_purchase is not None:
        coupon["min_purchase"] = min_purchase
    if max_uses is not None:
        coupon["max_uses"] = max_uses
    if max_uses_per_customer is not None:
        coupon["max_uses_per_customer"] = max_uses_per_customer
    if expiry:
        coupon["expires"] = to_wire_date(expiry) or expiry
    return coupon


async def create_interactive(
    *,
    input_fn: InputFn = input,
    client_factory: ClientFactory = BigCommerceClient.from_settings,
) -> bool:
    try:
        coupon = prompt_coupon(input_fn)
    except ValueError as exc:
        print(f"Invalid value: {exc}")
        return False

    print(json.dumps(coupon, indent=2))
    if input_fn("Create this coupon? (yes/no): ").strip().lower() != "yes":
        print("Cancelled")
        return False

    async with client_factory() as client:
        result = await client.create_coupon(coupon)
    if not result.ok:
        print(f"Error: {result.error}")
        return False
    data = result.data or {}
    print(f"Coupon created: ID {data.get('id')}, code {data.get('code')}")
    return True


async def export_all_coupons(output: Path, *, client_factory: ClientFactory = BigCommerceClient.from_settings) -> Path | None:
    async with client_factory() as client:
        coupons = await client.get_coupons()
    print(f"Total coupons fetched: {len(coupons)}")
    if not coupons:
        print("No coupons found in the store")
        return None
    rows = [exporter.format_coupon_for_export(c) for c in coupons]
    exporter.write_table(rows, output, sheet_title=exporter.ALL_COUPONS_SHEET_TITLE, columns=exporter.EXPORT_COLUMNS)
    print(f"Export complete: {output}")
    return output


async def coupon_report(
    input_path: Path,
    output: Path,
    *,
    column: str = "Coupon Code",
    client_factory: ClientFactory = BigCommerceClient.from_settings,
) -> Path:
    try:
        codes = exporter.read_coupon_codes(input_path, column=column)
    except ValueError as exc:
        logger.error("coupon_report_input_invalid", extra={"path": str(input_path), "error": str(exc)})
        raise SystemExit(str(exc)) from exc
    print(f"Loaded {len(codes)} coupon codes from {input_path.name}")

    now = datetime.now(timezone.utc)
    rows = []
    async with client_factory() as client:
        for index, code in enumerate(codes, start=1):
            print(f"[{index}/{len(codes)}] Processing {code}")
            rows.append(exporter.format_coupon_report_row(code, await client.find_coupon(code), now))
            await client.pause(client.page_delay)

    exporter.write_table(rows, output, sheet_title=exporter.REPORT_SHEET_TITLE)
    print(f"Report generated: {output}")
    return output


def _add_generate_command(subparsers) -> None:
    gen = subparsers.add_parser("generate", help="Generate a batch of unique coupons")
    gen.add_argument("--quantity", type=_quantity, required=True, help="Number of coupons to create")
    gen.add_argument("--code-prefix", required=True, help="Code prefix, e.g. GETLINKED")
    gen.add_argument("--name-prefix", required=True, help="Name prefix, e.g. 'SHOPIFY 100 OFF'")
    gen.add_argument("--ids", type=_parse_ids, required=True, help="Comma separated product or category ids")
    gen.add_argument("--targeting", choices=["products", "categories"], default="products")
    gen.add_argument("--discount", type=float, default=100, help="Percentage discount")
    gen.add_argument("--max-uses-per-customer", type=int, default=1)
    gen.add_argument("--max-uses", type=int, default=None)
    gen.add_argument("--min-purchase", type=float, default=0)
    gen.add_argument("--expiry-date", default=None, help="YYYY-MM-DD (default: 30 days from now)")
    gen.add_argument("--output-dir", default=".", help="Directory for the results spreadsheet")


def _add_create_command(subparsers) -> None:
    create = subparsers.add_parser("create", help="Create coupons from a JSON file, or interactively")
    create.add_argument("--file", help="JSON file with one coupon object or a list of them")


def _add_export_commands(subparsers) -> None:
    export_cmd = subparsers.add_parser("export-coupons", help="Export every store coupon to CSV or XLSX")
    export_cmd.add_argument("--output", default=None, help="Output path (.csv or .xlsx)")

    report = subparsers.add_parser("coupon-report", help="Usage report for the codes listed in a spreadsheet")
    report.add_argument("--input", required=True, help="Input .xlsx or .csv with a coupon code column")
    report.add_argument("--output", default="coupon-report.xlsx", help="Output path (.xlsx or .csv)")
    report.add_argument("--column", default="Coupon Code", help="Name of the code column")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="BigCommerce coupon utilities")
    subparsers = parser.add_subparsers(dest="command")
    _add_generate_command(subparsers)
    _add_create_command(subparsers)
    _add_export_commands(subparsers)
    return parser


def _generation_request(args: argparse.Namespace) -> GenerationRequest:
    return GenerationRequest(
        quantity=args.quantity,
        code_prefix=args.code_prefix,
        name_prefix=args.name_prefix,
        target_ids=args.ids,
        targeting=args.targeting,
        discount=args.discount,
        max_uses_per_customer=args.max_uses_per_customer,
        min_purchase=args.min_purchase,
        max_uses=args.max_uses,
        expiry_date=args.expiry_date,
    )


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "generate":
        asyncio.run(generate_coupons(_generation_request(args), output_dir=Path(args.output_dir)))
        return True

    if args.command == "create":
        if args.file:
            asyncio.run(create_from_file(_resolve_input_file(args.file)))
        else:
            asyncio.run(create_interactive())
        return True

    if args.command == "export-coupons":
        output = Path(args.output or exporter.all_coupons_export_filename())
        asyncio.run(export_all_coupons(output))
        return True

    if args.command == "coupon-report":
        asyncio.run(coupon_report(_resolve_input_file(args.input), Path(args.output), column=args.column))
        return True

    return False


def main():
    configure_logging(settings.log_json)
    parser = _build_parser()
    args = parser.parse_args()
    try:
        handled = _run_cli_command(args)
    except (KeyboardInterrupt, SystemExit):
        raise
    except Exception as exc:
        logger.exception("cli_command_failed", extra={"command": args.command})
        raise SystemExit(f"Fatal error: {exc}") from exc
    if not handled:
        parser.print_help()


if __name__ == "__main__":
    main()
