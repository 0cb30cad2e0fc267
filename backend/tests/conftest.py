"""
Pytest fixtures for clipcaption backend tests.

FFmpeg itself is never required: the driver tests run small shell scripts
that print FFmpeg-style stderr, and the pipeline tests use a fake driver.
"""

from pathlib import Path

import pytest

from clipcaption.config import get_settings
from clipcaption.schemas.subtitle import SourceSentence, TimedSubtitleSegment
from clipcaption.services.job_status import InMemoryJobStatusSink
from clipcaption.services.storage_service import LocalStorageService


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Fresh settings per test, with local storage under tmp_path."""
    monkeypatch.setenv("LOCAL_STORAGE_PATH", str(tmp_path / "storage"))
    monkeypatch.setenv("USE_LOCAL_STORAGE", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def local_store(tmp_path) -> LocalStorageService:
    """Local media store rooted in the test's temp directory."""
    return LocalStorageService(base_path=str(tmp_path / "storage"))


@pytest.fixture
def status_sink() -> InMemoryJobStatusSink:
    return InMemoryJobStatusSink()


@pytest.fixture
def greeting_sentences() -> list[SourceSentence]:
    """Two five-character sentences covering 0-4s."""
    return [
        SourceSentence("あいうえお。", 0.0, 2.0),
        SourceSentence("かきくけこ。", 2.0, 4.0),
    ]


@pytest.fixture
def timed_segments() -> list[TimedSubtitleSegment]:
    return [
        TimedSubtitleSegment(index=0, lines=("こんにちは",), start_time_seconds=0.0, end_time_seconds=2.0),
        TimedSubtitleSegment(
            index=1,
            lines=("今日は", "いい天気"),
            start_time_seconds=2.0,
            end_time_seconds=4.5,
        ),
    ]


@pytest.fixture
def make_fake_ffmpeg(tmp_path):
    """Factory for executable scripts that mimic FFmpeg's stderr and exit code.

    Lines are passed to printf as the format string, so they must not
    contain single quotes or percent signs. End a line with "\\r" to mimic
    FFmpeg's in-place status updates.
    """

    def _make(stderr_lines: list[str], exit_code: int = 0, sleep_seconds: float = 0) -> str:
        script = tmp_path / f"fake_ffmpeg_{len(list(tmp_path.glob('fake_ffmpeg_*')))}.sh"
        body = ["#!/bin/sh"]
        for line in stderr_lines:
            if line.endswith("\\r"):
                body.append(f"printf '{line}' >&2")
            else:
                body.append(f"printf '{line}\\n' >&2")
        if sleep_seconds:
            body.append(f"exec sleep {sleep_seconds}")
        body.append(f"exit {exit_code}")
        script.write_text("\n".join(body) + "\n")
        script.chmod(0o755)
        return str(script)

    return _make


@pytest.fixture
def write_source(local_store):
    """Place a dummy source file in the local store."""

    def _write(ref: str, size: int = 256 * 1024) -> Path:
        path = local_store.base_path / ref
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x00" * size)
        return path

    return _write
