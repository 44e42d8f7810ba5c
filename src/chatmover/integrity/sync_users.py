"""Reconciliation of import-file users with the users a server already has.

Before importing into a server that already holds users, every ``user`` line
is checked against a :class:`UserDirectory`, which is the source of truth:

- a username that exists with another email gets the directory's email;
- an email that exists with another username gets the directory's username.

When the username and the email match two different directory users, active
users win, and the username match wins between equals. Every username change
is then applied to the lines that follow: post authors, reactions, replies,
flags and direct channel members. Duplicate channel memberships are dropped.

Lines that cannot be parsed are written through unchanged.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, TextIO
from urllib.parse import quote

import requests
import structlog
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from chatmover.errors import ConfigurationError, UserDirectoryError
from chatmover.schemas.import_lines import (
    DirectChannelImportData,
    DirectPostImportData,
    LineImportData,
    PostImportData,
    ReactionImportData,
    ReplyImportData,
    UserImportData,
)

logger = structlog.get_logger(__name__)


class DirectoryUser(BaseModel):
    """A user known to the directory."""

    model_config = ConfigDict(extra="ignore")

    id: str
    username: str
    email: str
    delete_at: int = 0

    @property
    def is_active(self) -> bool:
        return self.delete_at == 0


class UserDirectory(Protocol):
    """Lookup of existing users. Both methods return None for unknown users."""

    def get_user_by_username(self, username: str) -> DirectoryUser | None: ...

    def get_user_by_email(self, email: str) -> DirectoryUser | None: ...


_directory_users_adapter = TypeAdapter(list[DirectoryUser])


class StaticUserDirectory:
    """Directory backed by an in-memory list, e.g. a JSON snapshot of the server users."""

    def __init__(self, users: Iterable[DirectoryUser]) -> None:
        self._by_username: dict[str, DirectoryUser] = {}
        self._by_email: dict[str, DirectoryUser] = {}
        for user in users:
            self._by_username[user.username.lower()] = user
            self._by_email[user.email.lower()] = user

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticUserDirectory":
        """Load a JSON array of ``{id, username, email, delete_at}`` objects.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        try:
            users = _directory_users_adapter.validate_json(Path(path).read_bytes())
        except OSError as e:
            raise ConfigurationError(f"Error reading user directory {path}: {e}") from e
        except ValidationError as e:
            raise ConfigurationError(f"Error parsing user directory {path}: {e}") from e
        logger.info("user_directory_loaded", path=str(path), users=len(users))
        return cls(users)

    def get_user_by_username(self, username: str) -> DirectoryUser | None:
        return self._by_username.get(username.lower())

    def get_user_by_email(self, email: str) -> DirectoryUser | None:
        return self._by_email.get(email.lower())


class MattermostUserDirectory:
    """Directory querying the users API of a running server.

    Args:
        site_url: Base URL of the server.
        token: Personal access token with permission to read users.
        timeout: Request timeout in seconds.
    """

    def __init__(self, site_url: str, token: str, timeout: float = 30.0) -> None:
        if not site_url or not token:
            raise ConfigurationError("A site URL and an admin token are required to query the server")
        self.base_url = site_url.rstrip("/") + "/api/v4/users"
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}"})

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _get(self, path: str) -> DirectoryUser | None:
        response = self.session.get(f"{self.base_url}/{path}", timeout=self.timeout)
        if response.status_code == requests.codes.not_found:
            return None
        response.raise_for_status()
        return DirectoryUser.model_validate(response.json())

    def _lookup(self, path: str) -> DirectoryUser | None:
        try:
            return self._get(path)
        except (requests.RequestException, ValidationError) as e:
            raise UserDirectoryError(f"User lookup {path} failed: {e}") from e

    def get_user_by_username(self, username: str) -> DirectoryUser | None:
        return self._lookup(f"username/{quote(username)}")

    def get_user_by_email(self, email: str) -> DirectoryUser | None:
        return self._lookup(f"email/{quote(email)}")


@dataclass
class SyncStats:
    """Outcome of a reconciliation run."""

    lines: int = 0
    users_checked: int = 0
    users_changed: list[str] = field(default_factory=list)
    username_mappings: dict[str, str] = field(default_factory=dict)
    unparseable_lines: int = 0


def merge_import_user(user: UserImportData, directory: UserDirectory) -> tuple[bool, bool]:
    """Align ``user`` with the directory.

    Returns:
        ``(username_changed, email_changed)``.

    Raises:
        UserDirectoryError: If a lookup fails.
    """
    email = user.email.lower()
    username = user.username.lower()

    by_username = directory.get_user_by_username(username)
    by_email = directory.get_user_by_email(email)

    if by_username is not None and by_username.email != email:
        logger.warning(
            "username_exists_with_other_email",
            username=username,
            directory_email=by_username.email,
            import_email=email,
        )
    if by_email is not None and by_email.username != username:
        logger.warning(
            "email_exists_with_other_username",
            email=email,
            directory_username=by_email.username,
            import_username=username,
        )

    avoid_email_update = False
    avoid_username_update = False
    if by_username is not None and by_email is not None and by_username.id != by_email.id:
        logger.warning(
            "duplicate_directory_users",
            username=username,
            email=email,
            username_match=by_username.username,
            email_match=by_email.username,
        )
        if by_username.is_active and not by_email.is_active:
            avoid_username_update = True
        else:
            avoid_email_update = True

    email_changed = False
    if not avoid_email_update and by_username is not None and by_username.email != email:
        logger.info("user_email_updated", username=username, old=email, new=by_username.email)
        user.email = by_username.email
        email_changed = True

    username_changed = False
    if not avoid_username_update and by_email is not None and by_email.username != username:
        logger.info("user_username_updated", email=email, old=username, new=by_email.username)
        user.username = by_email.username
        username_changed = True

    if not email_changed and not username_changed:
        logger.debug("user_unchanged", username=username)
    return username_changed, email_changed


def remove_duplicate_channel_memberships(user: UserImportData) -> int:
    """Drop repeated channel names from the user's first team.

    Returns:
        Number of memberships removed.
    """
    if not user.teams or not user.teams[0].channels:
        return 0
    team = user.teams[0]
    seen: set[str] = set()
    kept = []
    for membership in team.channels:
        if membership.name in seen:
            logger.warning("duplicate_channel_membership_removed", username=user.username, channel=membership.name)
            continue
        seen.add(membership.name)
        kept.append(membership)
    removed = len(team.channels) - len(kept)
    team.channels = kept
    return removed


def replace_username(username: str, mappings: dict[str, str]) -> str:
    return mappings.get(username, username)


def replace_usernames(usernames: list[str] | None, mappings: dict[str, str]) -> list[str] | None:
    if usernames is None:
        return None
    return [mappings.get(username, username) for username in usernames]


def _replace_in_reactions(reactions: list[ReactionImportData] | None, mappings: dict[str, str]) -> None:
    for reaction in reactions or []:
        reaction.user = replace_username(reaction.user, mappings)


def _replace_in_replies(replies: list[ReplyImportData] | None, mappings: dict[str, str]) -> None:
    for reply in replies or []:
        reply.user = replace_username(reply.user, mappings)
        reply.flagged_by = replace_usernames(reply.flagged_by, mappings)
        _replace_in_reactions(reply.reactions, mappings)


def apply_username_mappings(line: LineImportData, mappings: dict[str, str]) -> None:
    """Rename users inside a post, direct post or direct channel line."""
    if not mappings:
        return
    post: PostImportData | DirectPostImportData | None = line.post or line.direct_post
    if post is not None:
        post.user = replace_username(post.user, mappings)
        post.flagged_by = replace_usernames(post.flagged_by, mappings)
        _replace_in_reactions(post.reactions, mappings)
        _replace_in_replies(post.replies, mappings)
        if isinstance(post, DirectPostImportData):
            post.channel_members = replace_usernames(post.channel_members, mappings) or []

    direct_channel: DirectChannelImportData | None = line.direct_channel
    if direct_channel is not None:
        direct_channel.members = replace_usernames(direct_channel.members, mappings) or []
        direct_channel.favorited_by = replace_usernames(direct_channel.favorited_by, mappings)


def sync_import_users(
    lines: Iterable[str],
    directory: UserDirectory,
    output: TextIO | None = None,
    dry_run: bool = False,
) -> SyncStats:
    """Reconcile the users of an import file and rewrite it to ``output``.

    Args:
        lines: Lines of the import file.
        directory: Users that already exist.
        output: Destination of the rewritten lines; ignored in dry-run mode.
        dry_run: Only log what would change.

    Returns:
        Counts and the username changes that were found.
    """
    stats = SyncStats()
    writer = None if dry_run else output

    logger.info("sync_started", dry_run=dry_run)
    for raw in lines:
        text = raw.rstrip("\r\n")
        stats.lines += 1
        try:
            line = LineImportData.model_validate_json(text)
        except ValidationError as e:
            logger.warning("line_unparseable", line_number=stats.lines, error=str(e).splitlines()[0])
            stats.unparseable_lines += 1
            if writer is not None:
                writer.write(text + "\n")
            continue

        if line.type == "user" and line.user is not None:
            user = line.user
            old_username = user.username
            stats.users_checked += 1
            try:
                username_changed, email_changed = merge_import_user(user, directory)
            except UserDirectoryError as e:
                logger.error("user_check_failed", username=old_username, error=str(e))
            else:
                if username_changed or email_changed:
                    stats.users_changed.append(user.username)
                if username_changed:
                    stats.username_mappings[old_username] = user.username
                remove_duplicate_channel_memberships(user)
        else:
            apply_username_mappings(line, stats.username_mappings)

        if writer is not None:
            writer.write(line.to_json() + "\n")

    if dry_run:
        logger.info("sync_dry_run_finished", message="no file written")
    logger.info(
        "sync_finished",
        lines=stats.lines,
        users_checked=stats.users_checked,
        users_changed=len(stats.users_changed),
        changed=", ".join(stats.users_changed),
    )
    return stats


def sync_import_file(
    input_path: str | Path,
    directory: UserDirectory,
    output_path: str | Path | None = None,
    dry_run: bool = False,
) -> SyncStats:
    """File wrapper around :func:`sync_import_users`.

    Raises:
        ConfigurationError: If no output path is given outside dry-run mode.
    """
    if not dry_run and not output_path:
        raise ConfigurationError("An output file is required when not in dry-run mode")

    with open(input_path, encoding="utf-8") as source:
        if dry_run:
            return sync_import_users(source, directory, dry_run=True)
        with open(output_path, "w", encoding="utf-8") as out:
            return sync_import_users(source, directory, out)


__all__ = [
    "DirectoryUser",
    "MattermostUserDirectory",
    "StaticUserDirectory",
    "SyncStats",
    "UserDirectory",
    "apply_username_mappings",
    "merge_import_user",
    "remove_duplicate_channel_memberships",
    "sync_import_file",
    "sync_import_users",
]
