"""Checks and fixes applied to finished import files."""

from chatmover.integrity.sync_users import (
    DirectoryUser,
    MattermostUserDirectory,
    StaticUserDirectory,
    SyncStats,
    UserDirectory,
    sync_import_file,
    sync_import_users,
)

__all__ = [
    "DirectoryUser",
    "MattermostUserDirectory",
    "StaticUserDirectory",
    "SyncStats",
    "UserDirectory",
    "sync_import_file",
    "sync_import_users",
]
