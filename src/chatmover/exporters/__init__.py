"""Writers for the bulk-import file."""

from chatmover.exporters.bulk import BulkExporter, ChunkInfo, ExportResult, write_result_file

__all__ = ["BulkExporter", "ChunkInfo", "ExportResult", "write_result_file"]
