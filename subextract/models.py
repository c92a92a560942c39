from __future__ import annotations

"""
subextract/models.py

Modelos del dominio (solo datos, sin I/O ni logging).

- MediaStream / MediaSource / Episode: vista de solo lectura de lo que devuelve
  el índice de la biblioteca. El core NUNCA los muta.
- LanguageFilterConfig: los dos toggles de idioma.
- LibraryFolder: biblioteca configurada (nombre -> id raíz).
- EpisodePage: una página del índice (episodios válidos + items recibidos).
- ScanState: estado transitorio de un run (no se persiste).

Identificadores
---------------
Jellyfin devuelve ids como 32 hex sin guiones ("047cd2da002a2bd0eab6aaaccbed3dd2").
En disco se usan en forma canónica con guiones y minúsculas
("047cd2da-002a-2bd0-eab6-aaaccbed3dd2"). normalize_item_id() es la única
conversión válida entre ambas.
"""

import uuid
from dataclasses import dataclass, field
from typing import Final

SUBTITLE_STREAM_TYPE: Final[str] = "Subtitle"


def normalize_item_id(raw: str) -> str:
    """
    Forma canónica (con guiones, minúsculas) de un id de item.

    Acepta 32 hex sin guiones o ya con guiones, en cualquier caso.
    Lanza ValueError si no es un UUID.
    """
    return str(uuid.UUID(str(raw).strip()))


@dataclass(frozen=True, slots=True)
class LanguageFilterConfig:
    extract_spanish: bool = False
    extract_english: bool = False

    @property
    def is_active(self) -> bool:
        """Con ambos toggles a False no hay filtro: todo subtítulo se considera deseado."""
        return self.extract_spanish or self.extract_english


@dataclass(frozen=True, slots=True)
class MediaStream:
    """Una pista de un media source (solo nos interesan las de tipo Subtitle)."""

    type: str
    index: int
    language: str | None = None
    codec: str | None = None
    is_external: bool = False
    title: str | None = None

    @property
    def is_subtitle(self) -> bool:
        return self.type == SUBTITLE_STREAM_TYPE


@dataclass(frozen=True, slots=True)
class MediaSource:
    id: str
    path: str
    streams: tuple[MediaStream, ...] = ()

    def subtitle_streams(self) -> list[MediaStream]:
        return [s for s in self.streams if s.is_subtitle]


@dataclass(frozen=True, slots=True)
class Episode:
    id: str
    name: str
    sources: tuple[MediaSource, ...] = ()

    def media_sources(self) -> list[MediaSource]:
        return list(self.sources)


@dataclass(frozen=True, slots=True)
class EpisodePage:
    """
    Una página del índice.

    `fetched` cuenta los items que devolvió el servidor, incluidos los que no se
    pudieron parsear: solo fetched == 0 significa que no quedan más páginas.
    """

    episodes: tuple[Episode, ...] = ()
    fetched: int = 0

    @property
    def dropped(self) -> int:
        return max(0, self.fetched - len(self.episodes))


@dataclass(frozen=True, slots=True)
class LibraryFolder:
    name: str
    item_id: str


@dataclass(slots=True)
class ScanState:
    """
    Estado transitorio de un run del scan.

    Solo avanza (cursor, contadores, progreso); se descarta al terminar.
    """

    root_ids: list[str | None] = field(default_factory=list)
    roots_count: int = 1
    episodes_in_root: int = 0
    start_index: int = 0
    completed_episodes: int = 0
    start_progress: float = 0.0
    last_reported: float = 0.0

    def begin_root(self, episodes_in_root: int) -> None:
        self.episodes_in_root = max(0, int(episodes_in_root))
        self.start_index = 0
        self.completed_episodes = 0

    def root_progress(self) -> float:
        """Progreso acumulado: cada raíz aporta 1/roots_count, sin importar su tamaño."""
        if self.episodes_in_root <= 0:
            return self.start_progress
        completed = min(self.completed_episodes, self.episodes_in_root)
        return self.start_progress + (100.0 * completed / self.episodes_in_root / max(1, self.roots_count))
