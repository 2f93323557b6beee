"""Command-line interface for the SpielerPlus calendar filter."""

import argparse
import os
import sys

from .config import get_settings
from .exceptions import SpielerPlusError
from .logging_config import setup_logging
from .models import Credentials, FilterRequest
from .spielerplus_ics import SpielerPlusIcs


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="SpielerPlus calendar with attendance status emoji"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", help="Bind address (default from settings)")
    serve_parser.add_argument("--port", type=int, help="Port (default from settings)")

    export_parser = subparsers.add_parser("export", help="Write a filtered ICS file")
    export_parser.add_argument("token", help="Calendar token (the t= value)")
    export_parser.add_argument("user_id", help="User id (the u= value)")
    export_parser.add_argument("output", help="Destination .ics file")
    export_parser.add_argument("--username", required=True, help="SpielerPlus email")
    export_parser.add_argument(
        "--password",
        default=os.environ.get("SPIELERPLUS_PASSWORD"),
        help="SpielerPlus password (default: $SPIELERPLUS_PASSWORD)",
    )
    export_parser.add_argument("--name", help="Calendar display name")
    export_parser.add_argument(
        "--show-not-nominated",
        action="store_true",
        help="Include events you are not nominated for",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    settings = get_settings()
    setup_logging(settings.log_level)

    if args.command == "serve":
        import uvicorn

        from .server import create_app

        uvicorn.run(
            create_app(settings),
            host=args.host or settings.host,
            port=args.port or settings.port,
            log_config=None,
        )
        return 0

    if not args.password:
        parser.error("a password is required (--password or SPIELERPLUS_PASSWORD)")

    request = FilterRequest.for_token(
        token=args.token,
        user_id=args.user_id,
        credentials=Credentials(args.username, args.password),
        display_name=args.name or settings.default_calendar_name,
        show_not_nominated=args.show_not_nominated,
    )
    try:
        SpielerPlusIcs(
            request,
            policy=settings.retry_policy(),
            base_url=settings.base_url,
            timezone=settings.timezone,
        ).write_ics(args.output)
    except SpielerPlusError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
