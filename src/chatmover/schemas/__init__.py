"""Schemas for chatmover data models."""

from chatmover.schemas.import_lines import (
    IMPORT_FORMAT_VERSION,
    LineImportData,
)
from chatmover.schemas.intermediate import (
    ChannelType,
    Intermediate,
    IntermediateChannel,
    IntermediatePost,
    IntermediateReaction,
    IntermediateUser,
    PostType,
)

__all__ = [
    "IMPORT_FORMAT_VERSION",
    "ChannelType",
    "Intermediate",
    "IntermediateChannel",
    "IntermediatePost",
    "IntermediateReaction",
    "IntermediateUser",
    "LineImportData",
    "PostType",
]
