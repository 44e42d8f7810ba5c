"""Unit tests for resumable downloads.

Tests cover:
1. Size formatting and resume offsets
2. Overlap verification
3. Fresh, resumed and restarted downloads against a fake server
4. Retrying after a dropped connection
"""

import io
from pathlib import Path
from typing import Any

import pytest

from chatmover import download
from chatmover.download import calculate_size, check_overlap, download_into, human_size
from chatmover.errors import DownloadError


class FakeStreamResponse:
    """Context-managed streaming response."""

    def __init__(self, status_code: int, chunks: list[bytes], reason: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        self._chunks = chunks

    def __enter__(self) -> "FakeStreamResponse":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def iter_content(self, chunk_size: int) -> Any:
        return iter(self._chunks)


@pytest.fixture
def fake_get(monkeypatch: pytest.MonkeyPatch) -> Any:
    """Install a fake ``requests.get`` answering with the queued response."""

    class FakeGet:
        def __init__(self) -> None:
            self.response: FakeStreamResponse | None = None
            self.calls: list[dict[str, Any]] = []

        def __call__(self, url: str, **kwargs: Any) -> FakeStreamResponse:
            self.calls.append({"url": url, **kwargs})
            assert self.response is not None
            return self.response

    fake = FakeGet()
    monkeypatch.setattr(download.requests, "get", fake)
    return fake


class TestHelpers:
    """Tests for the size and overlap helpers."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [(-1, "unknown"), (10, "10 B"), (1536, "1.50 KiB"), (5 * 1024 * 1024, "5.00 MiB")],
    )
    def test_human_size(self, size: int, expected: str) -> None:
        """Test byte count formatting."""
        assert human_size(size) == expected

    def test_calculate_size(self) -> None:
        """Test resume offsets for complete, partial and oversized files."""
        assert calculate_size(io.BytesIO(b"12345"), 5) == (5, 0)
        assert calculate_size(io.BytesIO(b"12345"), 100) == (5, 5)
        assert calculate_size(io.BytesIO(b"12345"), 100, overlap=2) == (5, 2)

        oversized = io.BytesIO(b"12345")
        assert calculate_size(oversized, 3) == (0, 0)
        assert oversized.getvalue() == b""

    def test_check_overlap(self) -> None:
        """Test that only a matching file tail passes."""
        check_overlap(io.BytesIO(b"hello world"), b"world")
        with pytest.raises(DownloadError):
            check_overlap(io.BytesIO(b"hello world"), b"xorld")


class TestDownloadInto:
    """Tests for downloading into a file."""

    def test_fresh_download(self, fake_get: Any, tmp_path: Path) -> None:
        """Test that a missing file is created with the whole content."""
        fake_get.response = FakeStreamResponse(206, [b"01234", b"56789"])
        target = tmp_path / "files" / "a.bin"

        download_into(target, "https://files.example.com/a", 10)

        assert target.read_bytes() == b"0123456789"
        assert fake_get.calls[0]["headers"]["Range"] == "bytes=0-"
        assert fake_get.calls[0]["stream"] is True

    def test_resumed_download(self, fake_get: Any, tmp_path: Path) -> None:
        """Test that a partial file is completed after the overlap check."""
        target = tmp_path / "a.bin"
        target.write_bytes(b"01234")
        fake_get.response = FakeStreamResponse(206, [b"0123", b"456789"])

        download_into(target, "https://files.example.com/a", 10)

        assert target.read_bytes() == b"0123456789"

    def test_overlap_mismatch(self, fake_get: Any, tmp_path: Path) -> None:
        """Test that a local file with other content is not extended."""
        target = tmp_path / "a.bin"
        target.write_bytes(b"abcde")
        fake_get.response = FakeStreamResponse(206, [b"0123456789"])

        with pytest.raises(DownloadError):
            download_into(target, "https://files.example.com/a", 10)
        assert target.read_bytes() == b"abcde"

    def test_server_ignoring_range(self, fake_get: Any, tmp_path: Path) -> None:
        """Test that a full response replaces the partial file."""
        target = tmp_path / "a.bin"
        target.write_bytes(b"xyz")
        fake_get.response = FakeStreamResponse(200, [b"0123456789"])

        download_into(target, "https://files.example.com/a", 10)

        assert target.read_bytes() == b"0123456789"

    def test_complete_file_is_not_requested(self, fake_get: Any, tmp_path: Path) -> None:
        """Test that a file of the expected size is left alone."""
        target = tmp_path / "a.bin"
        target.write_bytes(b"0123456789")

        download_into(target, "https://files.example.com/a", 10)

        assert fake_get.calls == []

    def test_http_error(self, fake_get: Any, tmp_path: Path) -> None:
        """Test that error statuses raise DownloadError."""
        fake_get.response = FakeStreamResponse(404, [], reason="Not Found")

        with pytest.raises(DownloadError, match="404 Not Found"):
            download_into(tmp_path / "a.bin", "https://files.example.com/a", 10)

    def test_connection_error_is_retried(self, fake_get: Any, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test that a dropped connection is logged, waited on and retried."""
        sleeps: list[float] = []
        monkeypatch.setattr(download._resume_download.retry, "sleep", sleeps.append)
        fake_get.response = FakeStreamResponse(206, [b"0123456789"])
        failures = [download.requests.ConnectionError("reset by peer")]
        answer = fake_get.__call__

        def flaky_get(url: str, **kwargs: Any) -> FakeStreamResponse:
            if failures:
                raise failures.pop()
            return answer(url, **kwargs)

        monkeypatch.setattr(download.requests, "get", flaky_get)
        target = tmp_path / "a.bin"

        download_into(target, "https://files.example.com/a", 10)

        assert target.read_bytes() == b"0123456789"
        assert len(sleeps) == 1
        assert len(fake_get.calls) == 1
