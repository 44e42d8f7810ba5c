"""Base collector interface for chatmover export parsing.

This module defines the abstract base class shared by all provider collectors.
Collectors read a provider-native export (a zip archive or a JSON document) and
return raw provider models, without applying any import rules. Turning those
models into the canonical model is the transformers' job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, model_validator

logger = structlog.get_logger(__name__)


class SourceType(str, Enum):
    """Enumeration of supported export sources."""

    SLACK = "slack"
    SLACK_GRID = "slack_grid"
    TELEGRAM = "telegram"


class RawModel(BaseModel):
    """Base for raw provider records.

    Provider exports are loosely structured: unknown keys are ignored and
    explicit ``null`` values fall back to the field default.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        """Remove keys whose value is ``null`` so that defaults apply."""
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


@dataclass
class CollectionStats:
    """Statistics for a parsing run.

    Attributes:
        files_read: Number of export entries that were read.
        items_collected: Number of raw records parsed.
        items_skipped: Number of records dropped because they were malformed.
        errors: Error messages encountered during parsing.
        start_time: When parsing started.
        end_time: When parsing completed.
    """

    files_read: int = 0
    items_collected: int = 0
    items_skipped: int = 0
    errors: list[str] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Calculate the duration of the run in seconds."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None


SourceT = TypeVar("SourceT")
ExportT = TypeVar("ExportT")


class BaseCollector(ABC, Generic[SourceT, ExportT]):
    """Abstract base class for all export collectors.

    Type Parameters:
        SourceT: What the collector reads (an open zip archive, a file path).
        ExportT: The provider export object it produces.

    Example:
        ```python
        class SlackCollector(BaseCollector[zipfile.ZipFile, SlackExport]):
            def collect(self, source: zipfile.ZipFile) -> SlackExport:
                ...
        ```
    """

    def __init__(self, source_type: SourceType) -> None:
        """Initialize the base collector.

        Args:
            source_type: The type of export this collector handles.
        """
        self._source_type = source_type
        self._stats = CollectionStats()

    @property
    def source_type(self) -> SourceType:
        """Get the source type for this collector."""
        return self._source_type

    @property
    def stats(self) -> CollectionStats:
        """Get the statistics of the last run."""
        return self._stats

    def reset_stats(self) -> None:
        """Reset the statistics for a new run."""
        self._stats = CollectionStats()

    @abstractmethod
    def collect(self, source: SourceT) -> ExportT:
        """Parse ``source`` into the provider export object.

        Raises:
            ExportStructureError: If required top-level content is missing or
                malformed.
        """
        ...

    def run(self, source: SourceT) -> ExportT:
        """Parse ``source`` while recording timing statistics."""
        self.reset_stats()
        self._stats.start_time = datetime.now()
        export = self.collect(source)
        self._stats.end_time = datetime.now()
        logger.info(
            "collection_finished",
            source_type=self._source_type.value,
            files_read=self._stats.files_read,
            items_collected=self._stats.items_collected,
            items_skipped=self._stats.items_skipped,
            errors=len(self._stats.errors),
            duration_seconds=self._stats.duration_seconds,
        )
        return export


__all__ = [
    "BaseCollector",
    "CollectionStats",
    "ExportT",
    "RawModel",
    "SourceT",
    "SourceType",
]
