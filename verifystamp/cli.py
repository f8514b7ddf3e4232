"""Command line entry point.

Usage:
    verifystamp sign --pdf-in form.pdf --pdf-out signed.pdf --url https://example.org/signed/x.pdf
    verifystamp serve --host 0.0.0.0 --port 8000
"""

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .errors import StampError
from .placement import POLICIES
from .signing import SigningService


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    overrides = {}
    if getattr(args, "font", None):
        overrides["font_path"] = Path(args.font).resolve()
    if getattr(args, "logo", None):
        overrides["logo_path"] = Path(args.logo).resolve()
    if getattr(args, "institution", None):
        overrides["institution"] = args.institution
    if getattr(args, "placement", None):
        overrides["placement"] = args.placement
    return dataclasses.replace(settings, **overrides)


def cmd_sign(args: argparse.Namespace) -> int:
    service = SigningService.from_settings(_settings_from_args(args))
    result = service.sign(args.pdf_in, args.pdf_out, args.url)
    where = "last page" if result.decision.targets_existing_page else "new page"
    print(f"✓ Saved signed PDF: {result.path} ({result.page_count} pages, overlay on {where})")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .app import create_app

    uvicorn.run(create_app(_settings_from_args(args)), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="verifystamp",
        description="Stamp PDFs with a verification table and QR code.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    assets = argparse.ArgumentParser(add_help=False)
    assets.add_argument("--font", help="Font file for the table text (overrides VERIFYSTAMP_FONT_PATH)")
    assets.add_argument("--logo", help="Logo placed inside the QR code (overrides VERIFYSTAMP_LOGO_PATH)")
    assets.add_argument("--institution", help="Institution name printed in the table")
    assets.add_argument("--placement", choices=sorted(POLICIES), help="Placement strategy")

    sign = sub.add_parser("sign", parents=[assets], help="Stamp a local PDF")
    sign.add_argument("--pdf-in", required=True, help="Path to the source PDF")
    sign.add_argument("--pdf-out", required=True, help="Where to write the stamped PDF")
    sign.add_argument("--url", required=True, help="Public verification URL encoded in the QR code")
    sign.set_defaults(func=cmd_sign)

    serve = sub.add_parser("serve", parents=[assets], help="Run the HTTP service")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except StampError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
