"""Unit tests for thread assembly and attachment overflow.

Tests cover:
1. Timestamp reservation within a channel
2. Attaching replies, replies to replies and orphans
3. Splitting posts with more attachments than allowed
"""

import math

import pytest

from chatmover.schemas.intermediate import ChannelType, IntermediateChannel, IntermediatePost
from chatmover.transformers.attachments import reserve_timestamp, split_attachment_overflow
from chatmover.transformers.base import ChannelThreads


def _channel(channel_type: ChannelType = ChannelType.OPEN) -> IntermediateChannel:
    return IntermediateChannel(
        id="C1",
        original_name="general",
        name="general",
        display_name="general",
        type=channel_type,
        members_usernames=["alice", "bob"],
    )


class TestReserveTimestamp:
    """Tests for per-channel timestamp uniqueness."""

    def test_free_timestamp_is_kept(self) -> None:
        """Test that an unused timestamp is reserved as is."""
        used: set[int] = set()
        assert reserve_timestamp(5, used) == 5
        assert used == {5}

    def test_taken_timestamp_moves_forward(self) -> None:
        """Test that collisions are bumped to the next free millisecond."""
        used = {5, 6}
        assert reserve_timestamp(5, used) == 7
        assert used == {5, 6, 7}


class TestAttachmentOverflow:
    """Tests for moving extra attachments into replies."""

    def test_overflow_replies(self) -> None:
        """Test that twelve attachments become five plus two replies."""
        post = IntermediatePost(user="ann", create_at=100, attachments=[str(i) for i in range(12)])
        replies = split_attachment_overflow(post)

        assert post.attachments == ["0", "1", "2", "3", "4"]
        assert [(reply.create_at, len(reply.attachments)) for reply in replies] == [(101, 5), (102, 2)]
        assert all(reply.user == "ann" and reply.message == "" for reply in replies)
        assert replies[1].attachments == ["10", "11"]

    def test_within_limit(self) -> None:
        """Test that posts within the limit are not changed."""
        post = IntermediatePost(user="ann", create_at=100, attachments=["a", "b"])
        assert split_attachment_overflow(post) == []
        assert post.attachments == ["a", "b"]

    @pytest.mark.parametrize("count", [6, 10, 11, 23])
    def test_every_attachment_kept_exactly_once(self, count: int) -> None:
        """Test reply counts, reply sizes, ordering and coverage of the split."""
        original = [f"file-{i}" for i in range(count)]
        post = IntermediatePost(user="ann", create_at=100, attachments=list(original))
        replies = split_attachment_overflow(post)

        assert len(replies) == math.ceil((count - 5) / 5)
        assert all(len(reply.attachments) <= 5 for reply in replies)
        timestamps = [post.create_at] + [reply.create_at for reply in replies]
        assert timestamps == sorted(set(timestamps))
        combined = post.attachments + [path for reply in replies for path in reply.attachments]
        assert combined == original

    def test_overflow_skips_used_timestamps(self) -> None:
        """Test that overflow replies avoid timestamps already taken."""
        post = IntermediatePost(user="ann", create_at=100, attachments=[str(i) for i in range(6)])
        replies = split_attachment_overflow(post, {101})
        assert [reply.create_at for reply in replies] == [102]


class TestChannelThreads:
    """Tests for assembling the posts of a channel."""

    def test_replies_attach_to_root(self) -> None:
        """Test that a reply to a reply lands in the same root thread."""
        threads = ChannelThreads(_channel())
        root = IntermediatePost(user="alice", message="root", create_at=100)
        reply = IntermediatePost(user="bob", message="reply", create_at=100)
        nested = IntermediatePost(user="alice", message="nested", create_at=200)

        assert threads.place(root, "1")
        assert threads.place(reply, "2", "1")
        assert threads.place(nested, "3", "2")

        posts = threads.finish()
        assert posts == [root]
        assert [r.message for r in root.replies] == ["reply", "nested"]
        assert reply.create_at == 101
        assert root.channel == "general"
        assert root.is_direct is False

    def test_root_naming_itself_as_parent(self) -> None:
        """Test that a post whose parent key is its own key is a root."""
        threads = ChannelThreads(_channel())
        post = IntermediatePost(user="alice", create_at=100)
        assert threads.place(post, "1", "1")
        assert threads.finish() == [post]

    def test_orphaned_reply_is_dropped(self) -> None:
        """Test that replies to unknown posts are dropped."""
        threads = ChannelThreads(_channel())
        orphan = IntermediatePost(user="bob", create_at=100)
        assert threads.place(orphan, "2", "missing") is False
        assert threads.finish() == []

    def test_direct_channel_posts(self) -> None:
        """Test that posts of direct channels carry the member list."""
        threads = ChannelThreads(_channel(ChannelType.DIRECT))
        post = IntermediatePost(user="alice", create_at=100)
        threads.place(post, "1")
        assert post.is_direct is True
        assert post.channel_members == ["alice", "bob"]
        assert post.channel == ""

    def test_overflow_after_existing_replies(self) -> None:
        """Test that overflow replies never collide with placed replies."""
        threads = ChannelThreads(_channel())
        root = IntermediatePost(user="alice", create_at=100, attachments=[str(i) for i in range(7)])
        reply = IntermediatePost(user="bob", message="reply", create_at=101)
        threads.place(root, "1")
        threads.place(reply, "2", "1")

        threads.finish()
        assert [(r.create_at, len(r.attachments)) for r in root.replies] == [(102, 2), (101, 0)]
        assert len(root.attachments) == 5
