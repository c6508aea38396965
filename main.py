from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime, timezone

import uvicorn

from sensor_history.core.config import load_settings
from sensor_history.core.errors import SensorHistoryError
from sensor_history.core.logs import configure_logging
from sensor_history.factory import create_store
from sensor_history.services.retention import RetentionService
from sensor_history.services.statistics import storage_statistics


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sensor history store")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API (default)")
    serve.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    serve.add_argument(
        "--port", type=int, default=int(os.getenv("PORT", "8000")), help="Bind port"
    )

    sub.add_parser("sweep", help="Delete readings older than the retention window")
    sub.add_parser("stats", help="Print storage statistics")

    clear = sub.add_parser("clear", help="Delete every stored reading")
    clear.add_argument("--yes", action="store_true", help="Confirm the deletion")
    return parser.parse_args(argv)


def _serve(args: argparse.Namespace) -> int:
    reload_enabled = os.getenv("APP_ENV", "development").lower() != "production"
    uvicorn.run(
        "sensor_history.factory:create_app",
        factory=True,
        host=getattr(args, "host", "0.0.0.0"),
        port=getattr(args, "port", int(os.getenv("PORT", "8000"))),
        reload=reload_enabled,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)

    if args.command in (None, "serve"):
        return _serve(args)

    store = create_store(settings)
    try:
        if args.command == "sweep":
            retention = RetentionService(
                repo=store,
                retention_days=settings.retention_days,
                batch_size=settings.sweep_batch_size,
            )
            deleted = retention.sweep(datetime.now(tz=timezone.utc))
            print(f"Deleted {deleted} readings older than {settings.retention_days} days")
        elif args.command == "stats":
            stats = storage_statistics(store)
            print(f"Readings: {stats.total_count}")
            print(f"Devices:  {stats.device_count}")
            print(f"Oldest:   {stats.oldest.isoformat() if stats.oldest else '-'}")
            print(f"Newest:   {stats.newest.isoformat() if stats.newest else '-'}")
        elif args.command == "clear":
            if not args.yes:
                print("Refusing to clear the store without --yes", file=sys.stderr)
                return 2
            print(f"Deleted {store.clear()} readings")
    except SensorHistoryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
