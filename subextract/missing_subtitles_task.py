from __future__ import annotations

"""
subextract/missing_subtitles_task.py

Orquestador del scan "Check Missing Subtitles".

Flujo de un run
---------------
1) Bibliotecas objetivo:
   - settings.libraries vacío -> todo el catálogo (raíz None).
   - con nombres -> se resuelven a ids raíz; si no resuelve ninguno (nombres
     obsoletos) -> info + fallback a todo el catálogo.
2) Por raíz: count_episodes() UNA vez y páginas de settings.page_size.
3) Por episodio (estrictamente secuencial):
   - cancelación cooperativa (solo antes de cada episodio; el episodio en curso
     termina extracción + limpieza)
   - has_extracted_subtitles() -> True: skip (idempotencia entre runs)
   - False: por cada media source -> extractor + limpieza por idioma
   - progreso = start + 100 * completados / total_raíz / nº_raíces
4) Fin: progreso 100 + resumen.

Progreso
--------
Cada raíz pesa 1/nº_raíces, tenga los episodios que tenga. El valor reportado
nunca baja y se acota a [0, 100].

Errores
-------
- OperationCancelledError: se propaga. Los episodios terminados se quedan como
  están; si la cancelación sale de dentro de un episodio (p.ej. del extractor)
  ese episodio se purga antes de propagar, igual que un fallo.
- JellyfinClientError en count/page: se propaga (no se puede paginar a ciegas).
- Cualquier otra excepción al extraer/limpiar UN episodio: se loguea, se cuenta,
  se purga su directorio en caché (para que el siguiente run no lo dé por bueno)
  y se sigue con el siguiente episodio.
"""

import time
from dataclasses import dataclass, field
from typing import Final

from subextract import logger as _logger
from subextract.errors import OperationCancelledError
from subextract.interfaces import (
    NEVER_CANCELLED,
    CancellationToken,
    LibraryIndex,
    ProgressSink,
    SubtitleExtractor,
    SubtitlePathResolver,
)
from subextract.models import Episode, LanguageFilterConfig, ScanState
from subextract.run_metrics import METRICS, RunMetrics
from subextract.subtitle_artifacts import has_extracted_subtitles, purge_artifacts
from subextract.subtitle_cleanup import cleanup_unwanted_subtitles

QUERY_PAGE_LIMIT: Final[int] = 250
SUBTITLES_BASE_PATH: Final[str] = "/config/data/subtitles"


@dataclass(frozen=True, slots=True)
class ScanSettings:
    extract_spanish: bool = True
    extract_english: bool = True
    libraries: tuple[str, ...] = ()
    page_size: int = QUERY_PAGE_LIMIT
    subtitles_base_path: str = SUBTITLES_BASE_PATH
    dry_run: bool = False

    @property
    def language_filter(self) -> LanguageFilterConfig:
        return LanguageFilterConfig(self.extract_spanish, self.extract_english)

    @classmethod
    def from_config(cls) -> ScanSettings:
        from subextract import config as _cfg

        return cls(
            extract_spanish=_cfg.EXTRACT_SPANISH,
            extract_english=_cfg.EXTRACT_ENGLISH,
            libraries=tuple(_cfg.SELECTED_SUBTITLES_LIBRARIES),
            page_size=_cfg.SUBTITLES_QUERY_PAGE_LIMIT,
            subtitles_base_path=_cfg.SUBTITLES_BASE_PATH,
        )


@dataclass(slots=True)
class ScanSummary:
    roots_scanned: int = 0
    episodes_seen: int = 0
    episodes_skipped: int = 0
    episodes_missing: int = 0
    episodes_processed: int = 0
    episodes_failed: int = 0
    placeholders_written: int = 0
    placeholders_failed: int = 0
    failed_episode_ids: list[str] = field(default_factory=list)


class MissingSubtitlesTask:
    NAME: Final[str] = "Check Missing Subtitles"
    DESCRIPTION: Final[str] = "Checks for episodes without extracted subtitles."

    def __init__(
        self,
        library_index: LibraryIndex,
        extractor: SubtitleExtractor,
        resolver: SubtitlePathResolver,
        settings: ScanSettings,
        *,
        metrics: RunMetrics = METRICS,
        metrics_enabled: bool = True,
    ) -> None:
        self._index = library_index
        self._extractor = extractor
        self._resolver = resolver
        self._settings = settings
        self._page_size = max(1, int(settings.page_size))
        self._metrics = metrics
        self._metrics_enabled = metrics_enabled

    # --------------------------------------------------------
    # Helpers
    # --------------------------------------------------------

    def _incr(self, key: str, n: int = 1) -> None:
        if self._metrics_enabled:
            self._metrics.incr(key, n)

    @staticmethod
    def _report(progress: ProgressSink, state: ScanState, value: float) -> None:
        v = max(state.last_reported, min(100.0, max(0.0, float(value))))
        state.last_reported = v
        progress(v)

    def _resolve_roots(self) -> list[str]:
        names = list(self._settings.libraries)
        _logger.info(f"[SUBS] Librerías configuradas: {len(names)} - {', '.join(names)}")
        if not names:
            return []

        roots = self._index.resolve_library_roots_by_name(names)
        _logger.info(f"[SUBS] ParentIds encontrados: {len(roots)}")
        if not roots:
            _logger.info("[SUBS] No se encontraron librerías específicas, ejecutando en todo", always=True)
        return roots

    # --------------------------------------------------------
    # Run
    # --------------------------------------------------------

    def run(self, progress: ProgressSink, cancellation: CancellationToken = NEVER_CANCELLED) -> ScanSummary:
        _logger.info(f"====== {self.NAME}: task iniciada ======")
        t0 = time.monotonic()

        summary = ScanSummary()
        state = ScanState()

        roots = self._resolve_roots()
        state.root_ids = list(roots) if roots else [None]
        state.roots_count = len(state.root_ids)

        for root_id in state.root_ids:
            self._scan_root(root_id, state, summary, progress, cancellation)
            # lo acumulado pasa a ser la base de la siguiente raíz
            state.start_progress = state.root_progress()
            summary.roots_scanned += 1

        self._report(progress, state, 100.0)

        if self._metrics_enabled:
            self._metrics.observe_ms("subs.run.latency_ms", (time.monotonic() - t0) * 1000.0)
            _logger.progress(f"[SUBS] Resumen: {self._metrics.format_summary('subs.')}")
        _logger.info(
            f"====== {self.NAME}: task finalizada ====== "
            f"roots={summary.roots_scanned} seen={summary.episodes_seen} skipped={summary.episodes_skipped} "
            f"processed={summary.episodes_processed} failed={summary.episodes_failed}"
        )
        return summary

    def _scan_root(
        self,
        root_id: str | None,
        state: ScanState,
        summary: ScanSummary,
        progress: ProgressSink,
        cancellation: CancellationToken,
    ) -> None:
        _logger.info(f"[SUBS] ParentId: {root_id or 'NULL (todas las librerías)'}")

        total = self._index.count_episodes(root_id)
        state.begin_root(total)
        _logger.info(f"[SUBS] Total de episodios encontrados: {total}")

        while state.start_index < state.episodes_in_root:
            page = self._index.list_episodes_page(root_id, state.start_index, self._page_size)
            if page.fetched == 0:
                _logger.warning(
                    f"[SUBS] Página vacía en start_index={state.start_index} (total={total}); "
                    "se da la biblioteca por terminada",
                    always=True,
                )
                break

            for episode in page.episodes:
                cancellation.throw_if_cancellation_requested()

                self._process_episode(episode, summary)

                state.completed_episodes += 1
                self._report(progress, state, state.root_progress())

            if page.dropped:
                # items ilegibles: no se procesan, pero cuentan como hechos
                self._incr("subs.episodes.malformed", page.dropped)
                _logger.warning(
                    f"[SUBS] {page.dropped} item(s) ilegibles en start_index={state.start_index}; se saltan",
                    always=True,
                )
                state.completed_episodes += page.dropped
                self._report(progress, state, state.root_progress())

            state.start_index += self._page_size

    def _process_episode(self, episode: Episode, summary: ScanSummary) -> None:
        summary.episodes_seen += 1
        self._incr("subs.episodes.seen")
        base_path = self._settings.subtitles_base_path

        if has_extracted_subtitles(episode.id, base_path):
            summary.episodes_skipped += 1
            self._incr("subs.episodes.skipped")
            _logger.info(f"Episode {episode.name} (ID: {episode.id}) ya tiene los subs exportados... skip")
            return

        summary.episodes_missing += 1
        self._incr("subs.episodes.missing")
        _logger.info(f"Episode {episode.name} (ID: {episode.id}) is missing extracted subtitles")

        if self._settings.dry_run:
            return

        lang = self._settings.language_filter
        try:
            for media_source in episode.media_sources():
                t0 = time.monotonic()
                self._extractor.extract_all_extractable_subtitles(media_source)
                if self._metrics_enabled:
                    self._metrics.observe_ms("subs.extract.latency_ms", (time.monotonic() - t0) * 1000.0)

                result = cleanup_unwanted_subtitles(
                    self._resolver,
                    media_source,
                    lang.extract_spanish,
                    lang.extract_english,
                )
                summary.placeholders_written += result.replaced
                summary.placeholders_failed += result.failed
                self._incr("subs.placeholders.written", result.replaced)
                self._incr("subs.placeholders.failed", result.failed)
        except OperationCancelledError:
            # episodio a medias: fuera de la caché antes de propagar
            _logger.warning(f"[SUBS] Cancelado durante '{episode.name}' (ID: {episode.id}); se purga", always=True)
            self._rollback(episode)
            raise
        except Exception as exc:
            summary.episodes_failed += 1
            summary.failed_episode_ids.append(episode.id)
            self._incr("subs.episodes.failed")
            if self._metrics_enabled:
                self._metrics.add_error("scan", "episode", endpoint=episode.id, detail=repr(exc))
            _logger.error(f"[SUBS] Error procesando '{episode.name}' (ID: {episode.id}): {exc!r}", always=True)
            self._rollback(episode)
            return

        summary.episodes_processed += 1
        self._incr("subs.episodes.processed")

    def _rollback(self, episode: Episode) -> None:
        base_path = self._settings.subtitles_base_path
        ids = {episode.id, *(s.id for s in episode.media_sources())}
        for item_id in sorted(ids):
            purge_artifacts(item_id, base_path)


def run_missing_subtitles_check(
    library_index: LibraryIndex,
    extractor: SubtitleExtractor,
    resolver: SubtitlePathResolver,
    settings: ScanSettings,
    progress: ProgressSink,
    cancellation: CancellationToken = NEVER_CANCELLED,
    *,
    metrics_enabled: bool = True,
) -> ScanSummary:
    """Atajo funcional: construye el task y lo ejecuta."""
    task = MissingSubtitlesTask(
        library_index, extractor, resolver, settings, metrics_enabled=metrics_enabled
    )
    return task.run(progress, cancellation)
