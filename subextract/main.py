from __future__ import annotations

"""
subextract/main.py

Punto de entrada CLI (console_scripts: subextract-check).

Este módulo es CLI puro:
- Construye ScanSettings desde config (.env) + flags.
- Cablea los adaptadores reales (Jellyfin + ffmpeg) y lanza el scan.

Reglas de consola (alineado con subextract/logger.py)
----------------------------------------------------
- Estado global (inicio / fin / heartbeat de progreso): logger.progress(...)
- Errores de cliente: logger.error(..., always=True) y exit code 1
- SIGTERM / Ctrl+C: cancelación limpia (sin stacktrace), exit code 130
"""

import argparse
import signal
import sys
from collections.abc import Sequence
from dataclasses import replace
from types import FrameType

from subextract import logger as logger
from subextract.config import DEBUG_MODE, SILENT_MODE, SUBTITLES_RUN_METRICS_ENABLED
from subextract.config_base import _parse_env_csv_list
from subextract.errors import JellyfinClientError, OperationCancelledError
from subextract.ffmpeg_extractor import FfmpegSubtitleExtractor
from subextract.interfaces import CancellationToken, ProgressSink
from subextract.jellyfin_client import JellyfinLibraryIndex
from subextract.missing_subtitles_task import MissingSubtitlesTask, ScanSettings

EXIT_OK = 0
EXIT_CLIENT_ERROR = 1
EXIT_CANCELLED = 130


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """
    Flags opcionales: sin flags todo sale de la configuración (.env / entorno).
    """
    parser = argparse.ArgumentParser(
        prog="subextract-check",
        add_help=True,
        description=f"{MissingSubtitlesTask.NAME} - {MissingSubtitlesTask.DESCRIPTION}",
    )

    parser.add_argument(
        "--libraries",
        default=None,
        help="Bibliotecas separadas por coma (vacío = todas). Sustituye SELECTED_SUBTITLES_LIBRARIES.",
    )
    parser.add_argument(
        "--spanish",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Conservar subtítulos en español",
    )
    parser.add_argument(
        "--english",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Conservar subtítulos en inglés",
    )
    parser.add_argument("--base-path", default=None, help="Raíz de la caché de subtítulos")
    parser.add_argument("--page-size", type=int, default=None, help="Tamaño de página de la query de episodios")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Solo lista los episodios sin subtítulos extraídos (no extrae ni limpia)",
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, base: ScanSettings | None = None) -> ScanSettings:
    """Config (.env) + overrides de CLI (solo los flags presentes)."""
    settings = base or ScanSettings.from_config()
    overrides: dict[str, object] = {}

    if args.libraries is not None:
        overrides["libraries"] = tuple(_parse_env_csv_list(args.libraries))
    if args.spanish is not None:
        overrides["extract_spanish"] = bool(args.spanish)
    if args.english is not None:
        overrides["extract_english"] = bool(args.english)
    if args.base_path:
        overrides["subtitles_base_path"] = str(args.base_path)
    if args.page_size is not None:
        overrides["page_size"] = max(1, int(args.page_size))
    if args.dry_run:
        overrides["dry_run"] = True

    return replace(settings, **overrides) if overrides else settings


def _heartbeat() -> ProgressSink:
    """Línea de progreso solo cuando cambia el porcentaje entero."""
    last: list[int] = [-1]

    def _sink(value: float) -> None:
        pct = int(value)
        if pct != last[0]:
            last[0] = pct
            logger.progressf("[SUBS] Progreso: %d%%", pct)

    return _sink


def _install_sigterm(token: CancellationToken) -> None:
    def _handler(signum: int, frame: FrameType | None) -> None:
        logger.info("[SUBS] SIGTERM recibido: cancelando tras el episodio en curso...", always=True)
        token.cancel()

    try:
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # solo se puede instalar desde el hilo principal
        logger.debug_ctx("SUBS", "No se pudo instalar el handler de SIGTERM (no es el hilo principal)")


def main(argv: Sequence[str] | None = None) -> int:
    logger.progress("[SUBS] Inicio")

    args = _parse_args(argv)

    if SILENT_MODE:
        logger.progress("[SUBS] SILENT_MODE=True" + (" DEBUG_MODE=True" if DEBUG_MODE else ""))
    elif DEBUG_MODE:
        logger.debug_ctx("SUBS", "SILENT_MODE=False DEBUG_MODE=True")

    settings = build_settings(args)
    if settings.dry_run:
        logger.progress("[SUBS] Modo: dry-run (sin extracción)")

    token = CancellationToken()
    _install_sigterm(token)

    extractor = FfmpegSubtitleExtractor.from_config(settings.subtitles_base_path)
    task = MissingSubtitlesTask(
        JellyfinLibraryIndex.from_config(),
        extractor,
        extractor,
        settings,
        metrics_enabled=SUBTITLES_RUN_METRICS_ENABLED,
    )

    try:
        summary = task.run(_heartbeat(), token)
    except (OperationCancelledError, KeyboardInterrupt):
        logger.info("\n[SUBS] Interrumpido: scan cancelado.", always=True)
        return EXIT_CANCELLED
    except JellyfinClientError as exc:
        logger.error(f"[SUBS] Error de cliente Jellyfin: {exc}", always=True)
        return EXIT_CLIENT_ERROR
    finally:
        logger.progress("[SUBS] Fin")

    if summary.episodes_failed:
        logger.warning(
            f"[SUBS] {summary.episodes_failed} episodio(s) con error (se reintentarán en el próximo run)",
            always=True,
        )
    return EXIT_OK


def start() -> None:
    """Entry-point principal (console_scripts)."""
    sys.exit(main())


if __name__ == "__main__":
    start()
