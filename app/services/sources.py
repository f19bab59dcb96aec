# =============================================================================
# Content Sources - Where Ingestion Reads Files From
# =============================================================================
#
# The pipeline never touches paths directly. It receives ContentSource
# objects, each with a category label and a list of named entries whose
# bytes are read on demand:
#
#   DirectorySource  → one directory on disk, listed non-recursively
#   InMemorySource   → payloads already in memory (uploads, tests)
#
# Reading is deferred to SourceEntry.read() so that one unreadable file is
# a per-file failure the pipeline can log and skip.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from app.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceEntry:
    """A named file whose bytes are loaded by awaiting `read()`."""

    name: str
    read: Callable[[], Awaitable[bytes]]


class ContentSource(Protocol):
    """Anything that can list named files under one category."""

    category: str

    async def entries(self) -> list[SourceEntry]:
        ...


class DirectorySource:
    """
    Files directly inside one directory (no recursion).

    The category defaults to the directory name. A missing directory logs a
    warning and lists nothing.
    """

    def __init__(self, path: str | Path, category: str | None = None) -> None:
        self.path = Path(path).expanduser().resolve()
        self.category = category or self.path.name

    async def entries(self) -> list[SourceEntry]:
        if not self.path.is_dir():
            logger.warning("Directory not found: %s", self.path)
            return []

        names = await asyncio.to_thread(
            lambda: sorted(p.name for p in self.path.iterdir() if p.is_file())
        )
        return [SourceEntry(name=name, read=self._reader(name)) for name in names]

    def _reader(self, name: str) -> Callable[[], Awaitable[bytes]]:
        file_path = self.path / name

        async def read() -> bytes:
            return await asyncio.to_thread(file_path.read_bytes)

        return read

    def __repr__(self) -> str:
        return f"DirectorySource(path='{self.path}', category='{self.category}')"


class InMemorySource:
    """Named payloads held in memory."""

    def __init__(self, category: str, files: Mapping[str, bytes]) -> None:
        self.category = category
        self._files = dict(files)

    async def entries(self) -> list[SourceEntry]:
        return [
            SourceEntry(name=name, read=self._reader(data))
            for name, data in self._files.items()
        ]

    @staticmethod
    def _reader(data: bytes) -> Callable[[], Awaitable[bytes]]:
        async def read() -> bytes:
            return data

        return read


def sources_from_settings(settings: Settings) -> list[DirectorySource]:
    """Build directory sources from INGEST_SOURCES."""
    return [
        DirectorySource(source.path, source.category)
        for source in settings.ingest_sources
    ]
