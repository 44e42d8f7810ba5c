"""Export collectors for chatmover.

This package contains collectors that read provider exports (Slack workspace
archives and Telegram chat exports) into raw provider models.
"""

from chatmover.collectors.base import (
    BaseCollector,
    CollectionStats,
    RawModel,
    SourceType,
)
from chatmover.collectors.slack import SlackCollector, parse_slack_export
from chatmover.collectors.telegram import TelegramCollector, parse_telegram_export

__all__ = [
    "BaseCollector",
    "CollectionStats",
    "RawModel",
    "SlackCollector",
    "SourceType",
    "TelegramCollector",
    "parse_slack_export",
    "parse_telegram_export",
]
