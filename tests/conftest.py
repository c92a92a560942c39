from __future__ import annotations

import uuid
from collections.abc import Sequence
from pathlib import Path
from types import SimpleNamespace
from typing import Callable

import pytest

from subextract.errors import SubtitleExtractionError
from subextract.models import Episode, EpisodePage, MediaSource, MediaStream
from subextract.subtitle_artifacts import artifact_dir_for


def item_id(n: int) -> str:
    return str(uuid.UUID(int=n))


def sub(index: int, language: str | None, *, codec: str = "subrip", external: bool = False) -> MediaStream:
    return MediaStream(type="Subtitle", index=index, language=language, codec=codec, is_external=external)


def episode(n: int, *streams: MediaStream, name: str | None = None) -> Episode:
    """Episodio con un único media source cuyo id coincide con el del episodio."""
    eid = item_id(n)
    source = MediaSource(id=eid, path=f"/media/show/ep{n}.mkv", streams=tuple(streams))
    return Episode(id=eid, name=name or f"Episode {n}", sources=(source,))


class FakeLibraryIndex:
    """
    Índice en memoria.

    - episodes_by_root: root_id (None = todo) -> episodios
    - folders: nombre de biblioteca -> root_id
    - count_override: root_id -> total anunciado (para simular índices inconsistentes)
    - pages: (root_id, start_index) -> EpisodePage fija (items ilegibles, etc.)
    """

    def __init__(
        self,
        episodes_by_root: dict[str | None, list[Episode]],
        *,
        folders: dict[str, str] | None = None,
        count_override: dict[str | None, int] | None = None,
        pages: dict[tuple[str | None, int], EpisodePage] | None = None,
    ) -> None:
        self._episodes = episodes_by_root
        self._folders = folders or {}
        self._count_override = count_override or {}
        self._pages = pages or {}
        self.count_calls: list[str | None] = []
        self.page_calls: list[tuple[str | None, int, int]] = []

    def count_episodes(self, root_id: str | None) -> int:
        self.count_calls.append(root_id)
        if root_id in self._count_override:
            return self._count_override[root_id]
        return len(self._episodes.get(root_id, []))

    def list_episodes_page(self, root_id: str | None, start_index: int, page_size: int) -> EpisodePage:
        self.page_calls.append((root_id, start_index, page_size))
        if (root_id, start_index) in self._pages:
            return self._pages[(root_id, start_index)]
        chunk = tuple(self._episodes.get(root_id, [])[start_index : start_index + page_size])
        return EpisodePage(episodes=chunk, fetched=len(chunk))

    def resolve_library_roots_by_name(self, names: Sequence[str]) -> list[str]:
        return [self._folders[n] for n in names if n in self._folders]


class RecordingExtractor:
    """
    Extractor + resolver falsos sobre el layout real de la caché.

    Escribe "<index>.srt" no vacío por cada pista embebida. Si el id del media
    source está en fail_for, escribe primero y luego falla (extracción parcial).
    on_extract (opcional) se llama con el media source tras escribir, antes del fallo.
    """

    def __init__(
        self,
        base_path: Path,
        *,
        fail_for: Sequence[str] = (),
        on_extract: Callable[[MediaSource], None] | None = None,
    ) -> None:
        self.base_path = base_path
        self.fail_for = set(fail_for)
        self.on_extract = on_extract
        self.calls: list[str] = []

    def extract_all_extractable_subtitles(self, media_source: MediaSource) -> None:
        self.calls.append(media_source.id)
        target_dir = artifact_dir_for(media_source.id, self.base_path)
        target_dir.mkdir(parents=True, exist_ok=True)
        for stream in media_source.subtitle_streams():
            if stream.is_external:
                continue
            (target_dir / f"{stream.index}.srt").write_text("1\n00:00:01,000 --> 00:00:02,000\nhola\n")
        if self.on_extract is not None:
            self.on_extract(media_source)
        if media_source.id in self.fail_for:
            raise SubtitleExtractionError(media_source.path, 0, "exit 1: boom")

    def get_subtitle_file_path(self, stream: MediaStream, media_source: MediaSource) -> Path | None:
        if stream.is_external:
            return None
        return artifact_dir_for(media_source.id, self.base_path) / f"{stream.index}.srt"


class ProgressRecorder:
    def __init__(self, on_report: Callable[[float], None] | None = None) -> None:
        self.values: list[float] = []
        self._on_report = on_report

    def __call__(self, value: float) -> None:
        self.values.append(value)
        if self._on_report is not None:
            self._on_report(value)


@pytest.fixture()
def subs_base(tmp_path: Path) -> Path:
    base = tmp_path / "subtitles"
    base.mkdir()
    return base


@pytest.fixture()
def extractor(subs_base: Path) -> RecordingExtractor:
    return RecordingExtractor(subs_base)


@pytest.fixture()
def progress() -> ProgressRecorder:
    return ProgressRecorder()


@pytest.fixture()
def fx() -> SimpleNamespace:
    """Builders y fakes del scan (evita importar conftest desde los tests)."""
    return SimpleNamespace(
        item_id=item_id,
        sub=sub,
        episode=episode,
        Index=FakeLibraryIndex,
        Extractor=RecordingExtractor,
        Progress=ProgressRecorder,
    )
