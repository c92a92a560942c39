"""
subextract/interfaces.py

Contratos de los colaboradores externos del scan.

El orquestador recibe TODO por parámetro (índice, extractor, resolver, progreso,
cancelación): no hay registro global. Las implementaciones reales viven en
jellyfin_client.py / ffmpeg_extractor.py; los tests usan fakes.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Protocol, Sequence

from subextract.errors import OperationCancelledError
from subextract.models import EpisodePage, MediaSource, MediaStream

ProgressSink = Callable[[float], None]


class LibraryIndex(Protocol):
    def count_episodes(self, root_id: str | None) -> int: ...

    def list_episodes_page(self, root_id: str | None, start_index: int, page_size: int) -> EpisodePage: ...

    def resolve_library_roots_by_name(self, names: Sequence[str]) -> list[str]: ...


class SubtitleExtractor(Protocol):
    def extract_all_extractable_subtitles(self, media_source: MediaSource) -> None: ...


class SubtitlePathResolver(Protocol):
    def get_subtitle_file_path(self, stream: MediaStream, media_source: MediaSource) -> Path | None: ...


class CancellationToken:
    """
    Señal de cancelación cooperativa (poll-or-throw).

    cancel() es seguro desde otro hilo o desde un signal handler.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def throw_if_cancellation_requested(self) -> None:
        if self.is_cancellation_requested:
            raise OperationCancelledError("cancelación solicitada")


# Token que nunca se cancela (por defecto cuando el host no aporta uno).
NEVER_CANCELLED = CancellationToken()
