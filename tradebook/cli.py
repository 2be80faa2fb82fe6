"""
Command Line Interface for Tradebook
"""

import argparse
import json
import sys
from pathlib import Path


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(description="Tradebook - multi-venue trade reconciliation")
    parser.add_argument("--log-level", type=str, default=None,
                        help="Logging level (defaults to $TRADEBOOK_LOG_LEVEL or INFO)")
    parser.add_argument("--log-file", type=str, default=None,
                        help="Optional JSON log file")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # CSV import command
    import_parser = subparsers.add_parser("import", help="Import a venue CSV export")
    import_parser.add_argument("file", type=str, help="Path to the CSV file")
    import_parser.add_argument("--venue", type=str, required=True,
                               help="Venue the file was exported from (see 'tradebook venues')")
    _add_output_arguments(import_parser)

    # Paste import command
    paste_parser = subparsers.add_parser("paste", help="Import a pasted TradeLocker history block")
    paste_parser.add_argument("file", type=str, help="File holding the pasted text, '-' for stdin")
    _add_output_arguments(paste_parser)

    # API payload import command
    api_parser = subparsers.add_parser("api", help="Import a JSON list of API transactions")
    api_parser.add_argument("file", type=str, help="Path to the JSON payload")
    api_parser.add_argument("--venue", type=str, required=True, help="Venue the payload came from")
    _add_output_arguments(api_parser)

    # Venue listing
    subparsers.add_parser("venues", help="List supported venues")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    from .utils.structured_logging import configure_structured_logging
    configure_structured_logging(log_level=args.log_level, log_file=args.log_file,
                                 console_output=args.log_file is None, json_format=True)

    if args.command == "import":
        return _handle_import(args)
    elif args.command == "paste":
        return _handle_paste(args)
    elif args.command == "api":
        return _handle_api(args)
    elif args.command == "venues":
        return _handle_venues()

    parser.print_help()
    return 1


def _add_output_arguments(subparser: argparse.ArgumentParser):
    subparser.add_argument("--output", type=str, default=None,
                           help="Write trades to this path instead of stdout")
    subparser.add_argument("--format", choices=["csv", "json"], default="csv",
                           help="Output format")
    subparser.add_argument("--show-logs", action="store_true",
                           help="Print the import log after the trades")
    subparser.add_argument("--config", type=str, default="config/",
                           help="Config directory path")


def _build_pipeline(config_dir: str):
    from .pipeline import ImportPipeline
    from .utils.config import ConfigManager

    config = ConfigManager(config_dir).get_import_config()
    return ImportPipeline(config)


def _handle_import(args) -> int:
    """Handle CSV import command"""
    from .models import ImportFailure

    try:
        pipeline = _build_pipeline(args.config)
        result = pipeline.import_file(args.file, args.venue)
    except ImportFailure as e:
        return _report_failure(e)

    return _emit(result, args)


def _handle_paste(args) -> int:
    """Handle pasted block import command"""
    from .models import ImportFailure

    try:
        text = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"❌ Could not read {args.file}: {e}", file=sys.stderr)
        return 1

    try:
        result = _build_pipeline(args.config).import_paste(text)
    except ImportFailure as e:
        return _report_failure(e)

    return _emit(result, args)


def _handle_api(args) -> int:
    """Handle API payload import command"""
    from .models import ImportFailure

    try:
        with open(args.file, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as e:
        print(f"❌ Could not read {args.file}: {e}", file=sys.stderr)
        return 1

    if isinstance(payload, dict):
        # Some exports wrap the list, e.g. {"data": [...]} or {"result": {"list": [...]}}
        result = payload.get("result")
        if isinstance(result, dict):
            result = result.get("list")
        payload = payload.get("data") or result or []
    if not isinstance(payload, list):
        print("❌ API payload must be a JSON list of transactions", file=sys.stderr)
        return 1

    try:
        result = _build_pipeline(args.config).import_api_transactions(payload, args.venue)
    except ImportFailure as e:
        return _report_failure(e)

    return _emit(result, args)


def _handle_venues() -> int:
    """Handle venue listing"""
    from .models import Venue

    print("Supported venues:")
    for venue in Venue:
        print(f"   • {venue.value}")
    return 0


def _emit(result, args) -> int:
    if args.format == "json":
        rendered = json.dumps(result.to_dict(), indent=2)
    else:
        rendered = result.to_dataframe().to_csv(index=False)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(rendered, encoding="utf-8")
        print(f"✅ Imported {result.trade_count} trades (total P&L {result.total_pnl:,.2f})")
        print(f"   • Written to: {output_path}")
    else:
        print(rendered)

    if result.open_positions:
        print(f"   • Open positions: {len(result.open_positions)}")

    if args.show_logs:
        print("\nImport log:")
        for line in result.logs:
            print(f"   {line}")
    return 0


def _report_failure(error) -> int:
    print(f"❌ Import failed: {error}", file=sys.stderr)
    for line in error.logs:
        print(f"   {line}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
