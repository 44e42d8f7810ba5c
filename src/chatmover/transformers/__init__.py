"""Transformers for converting provider exports into the canonical model.

This package contains the provider transformers (Slack, Telegram) and the
rules they share: markup and mention rewriting, emoji lookup, attachment
overflow splitting and text helpers.
"""

from chatmover.transformers.attachments import reserve_timestamp, split_attachment_overflow
from chatmover.transformers.base import BaseTransformer, ChannelThreads, ExportT, TransformOptions
from chatmover.transformers.emoji import EmojiTable
from chatmover.transformers.slack_transformer import SlackTransformer
from chatmover.transformers.telegram_transformer import TelegramTransformer

__all__ = [
    "BaseTransformer",
    "ChannelThreads",
    "EmojiTable",
    "ExportT",
    "SlackTransformer",
    "TelegramTransformer",
    "TransformOptions",
    "reserve_timestamp",
    "split_attachment_overflow",
]
