"""Main entrypoint: sign in → list messages → fetch details concurrently.

Usage:
    python -m graphfetch.fetch_messages
    python -m graphfetch.fetch_messages --settings appsettings.json --max-workers 8
    python -m graphfetch.fetch_messages --device-flow --log-level DEBUG --json-logs
"""

import argparse
import logging
import sys
import threading
import uuid
from dataclasses import replace
from typing import Callable, Optional

from graphfetch.auth import CredentialProvider, MsalCredentialProvider
from graphfetch.clients import (
    BearerAuthTransport,
    GraphClient,
    HttpTransport,
    MessageLister,
    RetryingDetailFetcher,
    SessionTransport,
    get_profile,
)
from graphfetch.config import AppSettings, load_settings
from graphfetch.errors import AuthError, ConfigError, ParseError, TransportError
from graphfetch.models import FetchReport
from graphfetch.observers import CompositeObserver, ConsoleObserver
from graphfetch.orchestrator import FanOutOrchestrator
from graphfetch.utils import FetchLogger, setup_logging, timed_operation

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def build_client(
    settings: AppSettings,
    credential_provider: Optional[CredentialProvider] = None,
    transport: Optional[HttpTransport] = None,
) -> GraphClient:
    """Compose credential provider, transports and client from settings.

    Args:
        settings: Validated settings
        credential_provider: Overrides the MSAL provider
        transport: Overrides the pooled session transport (wrapped with auth)
    """
    provider = credential_provider or MsalCredentialProvider(
        client_id=settings.application_id,
        tenant_id=settings.tenant_id,
        use_device_flow=settings.use_device_flow,
    )
    base_transport = transport or SessionTransport(
        timeout=settings.request_timeout,
        pool_size=settings.max_workers or settings.page_size,
    )
    return GraphClient(
        BearerAuthTransport(base_transport, provider),
        base_url=settings.base_url,
    )


def run_fetch(
    settings: AppSettings,
    client: GraphClient,
    write: Callable[[str], None] = print,
    run_id: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
) -> FetchReport:
    """Greet the user, list messages, and fetch every message's detail.

    Args:
        settings: Validated settings
        client: Authenticated Graph client
        write: Sink for human-readable status lines
        run_id: Optional run ID (auto-generated if not provided)
        cancel_event: Set from another thread to stop the run

    Returns:
        Report with one outcome per listed message

    Raises:
        AuthError: No token could be obtained
        TransportError: Profile or list request failed
        ParseError: Profile or list body was malformed
    """
    if run_id is None:
        run_id = uuid.uuid4().hex[:12]

    logger.info("Starting fetch run", extra={"run_id": run_id})

    profile = get_profile(client)
    write(f"Hello {profile.display_name}")

    fetch_logger = FetchLogger(run_id)
    observer = CompositeObserver([ConsoleObserver(write), fetch_logger])

    with timed_operation("fetch_messages", logger) as timer:
        identifiers = MessageLister(client).list_identifiers(settings.page_size)

        fetcher = RetryingDetailFetcher(
            client,
            default_delay=settings.default_retry_delay,
            max_retries=settings.max_retries,
            max_total_delay=settings.max_total_delay,
            max_retry_delay=settings.max_retry_delay,
            cancel_event=cancel_event,
            observer=observer,
        )
        orchestrator = FanOutOrchestrator(
            fetcher,
            max_workers=settings.max_workers,
            observer=observer,
        )
        report = orchestrator.fetch_all(identifiers)

    write("")
    write(f"Elapsed time: {timer.seconds:.2f} seconds")

    summary = {
        **report.to_dict(),
        "run_id": run_id,
        "status": "success" if report.ok else "partial_failure",
        "duration_seconds": round(timer.seconds, 3),
        "requests": client.metrics.to_dict(),
        "events": fetch_logger.get_metrics(),
    }
    logger.info(
        f"Fetch run complete: {summary['succeeded']}/{summary['total']} messages "
        f"in {timer.seconds:.2f}s",
        extra=summary
    )
    return report


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fetch the signed-in user's messages from Microsoft Graph"
    )
    parser.add_argument(
        "--settings",
        type=str,
        default=None,
        help="Settings JSON file (default: ./appsettings.json if present)",
    )
    parser.add_argument("--page-size", type=int, default=None, help="Messages to list (1-1000)")
    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Concurrent detail requests (default: one per message)",
    )
    parser.add_argument("--max-retries", type=int, default=None, help="Throttled retries per message")
    parser.add_argument(
        "--device-flow",
        action="store_true",
        help="Sign in with a device code instead of a browser",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level (default: WARNING)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    return parser.parse_args(argv)


def apply_overrides(settings: AppSettings, args: argparse.Namespace) -> AppSettings:
    """Layer command-line values over loaded settings and re-validate."""
    overrides = {
        "page_size": args.page_size,
        "max_workers": args.max_workers,
        "max_retries": args.max_retries,
    }
    changes = {k: v for k, v in overrides.items() if v is not None}
    if args.device_flow:
        changes["use_device_flow"] = True
    return replace(settings, **changes).validate()


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    setup_logging(level=args.log_level, json_format=args.json_logs)

    try:
        settings = apply_overrides(load_settings(args.settings), args)
    except ConfigError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    client = build_client(settings)
    try:
        report = run_fetch(settings, client)
    except (AuthError, TransportError, ParseError) as e:
        logger.error(f"Fetch run failed: {e}", exc_info=True)
        print(f"Fetch run failed: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED
    finally:
        client.close()

    return EXIT_OK if report.ok else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
