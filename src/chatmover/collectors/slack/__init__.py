"""Slack export collector."""

from chatmover.collectors.slack.models import (
    SlackChannel,
    SlackComment,
    SlackExport,
    SlackFile,
    SlackPost,
    SlackProfile,
    SlackReaction,
    SlackRoom,
    SlackUser,
)
from chatmover.collectors.slack.parser import (
    SlackCollector,
    check_for_required_file,
    parse_channels,
    parse_posts,
    parse_slack_export,
    precheck,
)

__all__ = [
    "SlackChannel",
    "SlackCollector",
    "SlackComment",
    "SlackExport",
    "SlackFile",
    "SlackPost",
    "SlackProfile",
    "SlackReaction",
    "SlackRoom",
    "SlackUser",
    "check_for_required_file",
    "parse_channels",
    "parse_posts",
    "parse_slack_export",
    "precheck",
]
