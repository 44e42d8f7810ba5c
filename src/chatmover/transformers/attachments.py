"""Per-post attachment limit handling."""

from chatmover.schemas.intermediate import POST_MAX_ATTACHMENTS, IntermediatePost


def reserve_timestamp(create_at: int, used: set[int]) -> int:
    """Return the first timestamp at or after ``create_at`` not in ``used`` and reserve it."""
    while create_at in used:
        create_at += 1
    used.add(create_at)
    return create_at


def split_attachment_overflow(
    post: IntermediatePost,
    used_timestamps: set[int] | None = None,
    limit: int = POST_MAX_ATTACHMENTS,
) -> list[IntermediatePost]:
    """Move attachments beyond ``limit`` into empty replies by the same author.

    ``post`` keeps its first ``limit`` attachments. The rest are grouped by
    ``limit`` into new replies timestamped after the post, each strictly later
    than the previous one and never on a timestamp already in
    ``used_timestamps``.

    Returns:
        The overflow replies, in order. Empty when ``post`` is within the limit.

    Example:
        >>> post = IntermediatePost(user="ann", create_at=100, attachments=[str(i) for i in range(12)])
        >>> [(r.create_at, len(r.attachments)) for r in split_attachment_overflow(post)]
        [(101, 5), (102, 2)]
    """
    if len(post.attachments) <= limit:
        return []

    used = used_timestamps if used_timestamps is not None else set()
    overflow = post.attachments[limit:]
    post.attachments = post.attachments[:limit]

    replies: list[IntermediatePost] = []
    create_at = post.create_at
    for start in range(0, len(overflow), limit):
        create_at = reserve_timestamp(create_at + 1, used)
        replies.append(
            IntermediatePost(
                user=post.user,
                channel=post.channel,
                message="",
                create_at=create_at,
                attachments=overflow[start : start + limit],
                is_direct=post.is_direct,
                channel_members=list(post.channel_members),
            )
        )
    return replies


__all__ = ["reserve_timestamp", "split_attachment_overflow"]
