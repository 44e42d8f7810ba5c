"""Command line entry point for chatmover.

Subcommands:
- transform-slack: Slack workspace export zip to a bulk-import JSONL file
- transform-telegram: Telegram chat export to a bulk-import JSONL file
- grid-transform: Slack Enterprise Grid export to one workspace export per team
- sync-import-users: reconcile the users of an import file with existing users

Usage:
    chatmover transform-slack --team myteam --file export.zip --output bulk-export.jsonl
    chatmover transform-telegram --team myteam --file ./ChatExport --default-email-domain example.com
    chatmover grid-transform --file grid.zip --team-map teams.json
    chatmover sync-import-users --file bulk-export.jsonl --directory-file users.json --dry-run

Configuration is read from the environment (see ``chatmover.config``);
command line flags take precedence.
"""

import argparse
import logging
import sys
from collections.abc import Sequence
from typing import Any

import structlog

from chatmover import __version__
from chatmover.config import VALID_AUTH_SERVICES, Settings, get_settings
from chatmover.errors import ChatMoverError
from chatmover.integrity.sync_users import (
    MattermostUserDirectory,
    StaticUserDirectory,
    UserDirectory,
    sync_import_file,
)
from chatmover.partition.grid import load_team_map
from chatmover.pipeline import grid_transform, transform_slack, transform_telegram
from chatmover.transformers.base import TransformOptions


def configure_logging(settings: Settings, debug: bool = False) -> None:
    """Configure structlog for structured logging.

    Sets up JSON logging for log files and colorful console logging for
    interactive runs. Output goes to ``settings.app.log_file`` when set,
    stdout otherwise.

    Args:
        settings: Application settings containing log configuration.
        debug: Force the DEBUG level.
    """
    shared_processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.app.log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=settings.app.log_file is None),
        ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = logging.DEBUG if debug else getattr(logging, settings.app.log_level)
    if settings.app.log_file:
        logging.basicConfig(format="%(message)s", filename=settings.app.log_file, encoding="utf-8", level=level)
    else:
        logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    # Set third-party loggers to WARNING to reduce noise
    for logger_name in ["urllib3", "requests"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def _add_transform_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--team", "-t", required=True, help="an existing team in the target server")
    parser.add_argument("--output", "-o", default=None, help="the output path")
    parser.add_argument(
        "--attachments-dir",
        "-d",
        default=None,
        help="the path for the attachments directory",
    )
    parser.add_argument(
        "--skip-convert-posts",
        "-c",
        action="store_true",
        help="skips converting mentions and post markup",
    )
    parser.add_argument(
        "--skip-attachments",
        "-a",
        action="store_true",
        help="skips copying the attachments from the import file",
    )
    parser.add_argument(
        "--skip-empty-emails",
        action="store_true",
        default=None,
        help="ignore empty email addresses; note that this results in invalid data",
    )
    parser.add_argument(
        "--default-email-domain",
        default=None,
        help="domain used to build emails for users without one, as <username>@<domain>",
    )
    parser.add_argument(
        "--auth-service",
        choices=sorted(VALID_AUTH_SERVICES - {""}),
        default=None,
        help="authentication service for the imported users",
    )
    parser.add_argument(
        "--max-chunk-size",
        type=int,
        default=None,
        help="maximum posts per output file, 0 for a single file",
    )
    parser.add_argument(
        "--max-message-length",
        type=int,
        default=None,
        help="longer messages are split into replies",
    )
    parser.add_argument("--result-file", default=None, help="file with conversion result information")
    parser.add_argument("--debug", action="store_true", help="show debug logs")


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with one subcommand per job."""
    parser = argparse.ArgumentParser(
        prog="chatmover",
        description="Converts chat platform exports into a Mattermost bulk-import file",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    slack = subparsers.add_parser("transform-slack", help="transform a Slack export zip into an import file")
    slack.add_argument("--file", "-f", required=True, help="the Slack export file to transform")
    _add_transform_arguments(slack)
    slack.add_argument(
        "--allow-download",
        "-l",
        action="store_true",
        help="download files that are missing from the export",
    )
    slack.add_argument(
        "--discard-invalid-props",
        action="store_true",
        help="drop posts with invalid props instead of only their props",
    )
    slack.add_argument("--channel-only", default="", help="only transform the channel with this name")

    telegram = subparsers.add_parser("transform-telegram", help="transform a Telegram chat export into an import file")
    telegram.add_argument(
        "--file",
        "-f",
        required=True,
        help="the Telegram export directory or its result.json",
    )
    _add_transform_arguments(telegram)

    grid = subparsers.add_parser("grid-transform", help="split a Slack Enterprise Grid export per team")
    grid.add_argument("--file", "-f", required=True, help="the Slack Grid export file")
    grid.add_argument("--team-map", "-t", required=True, help="JSON object mapping team IDs to team names")
    grid.add_argument("--work-dir", default=None, help="directory the export is extracted into")
    grid.add_argument("--output-dir", default=None, help="directory receiving the team archives")
    grid.add_argument("--debug", action="store_true", help="show debug logs")

    sync = subparsers.add_parser(
        "sync-import-users",
        help="align import file users with the users of an existing server",
    )
    sync.add_argument("--file", "-f", required=True, help="the bulk import JSONL file to check")
    sync.add_argument("--output", "-o", default=None, help="the output file name")
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="only log what would change, without writing a file",
    )
    sync.add_argument(
        "--directory-file",
        default=None,
        help="JSON snapshot of existing users; the server in MM_SITE_URL is queried when omitted",
    )
    sync.add_argument("--debug", action="store_true", help="show debug logs")

    return parser


def _transform_options(args: argparse.Namespace, settings: Settings) -> TransformOptions:
    return TransformOptions.from_settings(
        settings.transform,
        skip_convert_posts=args.skip_convert_posts,
        skip_attachments=args.skip_attachments,
        allow_download=getattr(args, "allow_download", False),
        discard_invalid_props=getattr(args, "discard_invalid_props", False),
        skip_empty_emails=args.skip_empty_emails,
        default_email_domain=args.default_email_domain,
        auth_service=args.auth_service,
        max_message_length=args.max_message_length,
        channel_only=getattr(args, "channel_only", ""),
        attachments_dir=args.attachments_dir,
    )


def run_transform_slack(args: argparse.Namespace, settings: Settings) -> int:
    transform_slack(
        args.file,
        args.team,
        output=args.output,
        options=_transform_options(args, settings),
        max_chunk_size=args.max_chunk_size,
        result_file=args.result_file,
        settings=settings,
    )
    return 0


def run_transform_telegram(args: argparse.Namespace, settings: Settings) -> int:
    transform_telegram(
        args.file,
        args.team,
        output=args.output,
        options=_transform_options(args, settings),
        max_chunk_size=args.max_chunk_size,
        result_file=args.result_file,
        settings=settings,
    )
    return 0


def run_grid_transform(args: argparse.Namespace, settings: Settings) -> int:
    teams = load_team_map(args.team_map)
    grid_transform(args.file, teams, work_dir=args.work_dir, output_dir=args.output_dir, settings=settings)
    return 0


def run_sync_import_users(args: argparse.Namespace, settings: Settings) -> int:
    directory: UserDirectory
    if args.directory_file:
        directory = StaticUserDirectory.from_file(args.directory_file)
    else:
        directory = MattermostUserDirectory(
            settings.sync.site_url,
            settings.sync.admin_token,
            settings.sync.request_timeout,
        )
    sync_import_file(args.file, directory, args.output, dry_run=args.dry_run)
    return 0


COMMANDS = {
    "transform-slack": run_transform_slack,
    "transform-telegram": run_transform_telegram,
    "grid-transform": run_grid_transform,
    "sync-import-users": run_sync_import_users,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line interface.

    Returns:
        Process exit code: 0 on success, 1 when the job failed.
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings, debug=args.debug)

    log = structlog.get_logger(__name__).bind(command=args.command)
    log.info("command_started", version=__version__)
    try:
        exit_code = COMMANDS[args.command](args, settings)
    except (ChatMoverError, OSError) as e:
        log.error("command_failed", error_type=type(e).__name__, error_message=str(e))
        return 1
    log.info("command_completed")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
