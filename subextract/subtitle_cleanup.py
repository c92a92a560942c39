from __future__ import annotations

"""
subextract/subtitle_cleanup.py

Limpieza de subtítulos extraídos que no están en un idioma deseado.

Flujo
-----
1) Recorre las pistas Subtitle del media source.
2) Las que el filtro de idioma descarta -> se resuelve su ruta en la caché y se
   añade a un conjunto ordenado y sin duplicados (varios streams pueden resolver
   al mismo fichero).
3) Conjunto vacío -> no-op (logueado), cero escrituras.
4) Cada ruta se sustituye por un placeholder de 0 bytes: borrar + crear (no truncar).

¿Por qué un placeholder y no simplemente borrar?
- El fichero existe -> la ubicación de esa pista queda "resuelta".
- Tamaño 0 -> subtitle_artifacts.has_extracted_subtitles() no lo cuenta como
  subtítulo válido.

Cada sustitución es independiente: si una ruta falla (permisos, disco...), se
loguea y se sigue con las demás.

No hay punto de cancelación aquí: una vez extraído el episodio, la limpieza se
completa entera (la cancelación se atiende antes de empezar el siguiente episodio).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from subextract import logger as _logger
from subextract.interfaces import SubtitlePathResolver
from subextract.language_filter import should_extract_subtitle
from subextract.models import LanguageFilterConfig, MediaSource


@dataclass(slots=True)
class CleanupResult:
    unwanted_paths: list[Path] = field(default_factory=list)
    replaced: int = 0
    failed: int = 0

    @property
    def is_noop(self) -> bool:
        return not self.unwanted_paths


def replace_with_placeholder(path: str | os.PathLike[str]) -> None:
    """Borra el fichero (si existe) y deja en su lugar uno vacío. Propaga OSError."""
    p = Path(path)
    try:
        p.unlink()
    except FileNotFoundError:
        pass
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "wb"):
        pass


def collect_unwanted_subtitle_paths(
    resolver: SubtitlePathResolver,
    media_source: MediaSource,
    extract_spanish: bool,
    extract_english: bool,
) -> list[Path]:
    unwanted: dict[Path, None] = {}

    for stream in media_source.subtitle_streams():
        if should_extract_subtitle(stream, extract_spanish, extract_english):
            continue

        path = resolver.get_subtitle_file_path(stream, media_source)
        if path is None:
            _logger.debug_ctx(
                "FILTER",
                f"stream {stream.index} ({stream.language or 'sin idioma'}) sin ruta en caché; se ignora",
            )
            continue

        _logger.info(f"[Language Filter] Path unwanted: {path}")
        unwanted.setdefault(Path(path), None)

    return list(unwanted)


def cleanup_unwanted_subtitles(
    resolver: SubtitlePathResolver,
    media_source: MediaSource,
    extract_spanish: bool,
    extract_english: bool,
) -> CleanupResult:
    """Sustituye por placeholders vacíos los subtítulos extraídos de idiomas no deseados."""
    _logger.info(
        f"[Language Filter] Active filters - Spanish: {extract_spanish}, English: {extract_english}"
    )

    if not LanguageFilterConfig(extract_spanish, extract_english).is_active:
        # sin toggles todo se conserva: ni siquiera se resuelven rutas
        _logger.info("[Language Filter] Filter inactive, keeping every subtitle")
        return CleanupResult()

    result = CleanupResult(
        unwanted_paths=collect_unwanted_subtitle_paths(
            resolver, media_source, extract_spanish, extract_english
        )
    )

    if result.is_noop:
        _logger.info("[Language Filter] No unwanted subtitle files to clean up")
        return result

    for path in result.unwanted_paths:
        try:
            replace_with_placeholder(path)
        except OSError as exc:
            result.failed += 1
            _logger.warning(
                f"[Language Filter] Failed to replace file with dummy: {path} ({exc!r})",
                always=True,
            )
            continue
        result.replaced += 1
        _logger.info(f"[Language Filter] Replaced unwanted subtitle with empty dummy: {path}")

    return result
