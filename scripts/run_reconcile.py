from __future__ import annotations

import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.notifications.dispatcher import LoggingNotifier  # noqa: E402
from main import build_gateway, build_service, build_store  # noqa: E402
from services.observability import configure_logging  # noqa: E402
from settings import Settings, validate_env_settings  # noqa: E402


def main() -> None:
    settings = Settings()
    parser = argparse.ArgumentParser(description="Verify stale PENDING transactions against Paystack once.")
    parser.add_argument("--stale-minutes", type=int, default=settings.RECONCILE_STALE_MINUTES)
    parser.add_argument("--limit", type=int, default=settings.RECONCILE_BATCH_SIZE)
    args = parser.parse_args()

    validate_env_settings(settings)
    configure_logging(settings.LOG_LEVEL)

    service = build_service(
        settings,
        store=build_store(settings),
        gateway=build_gateway(settings),
        notifier=LoggingNotifier(),
    )
    result = service.reconcile_pending(older_than_minutes=args.stale_minutes, limit=args.limit)
    summary = result["summary"]

    print("reconcile_run_at:", result["run_at"])
    print(
        "counts:",
        f"checked={summary['checked']}",
        f"applied={summary['applied']}",
        f"already_terminal={summary['already_terminal']}",
        f"in_flight={summary['in_flight']}",
        f"errors={summary['errors']}",
    )
    for item in result["items"]:
        print("item:", item)


if __name__ == "__main__":
    main()
