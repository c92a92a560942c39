"""
subextract/config.py

Fachada única de configuración.

Re-exporta config_base + config_subtitles para que:
- el resto del proyecto pueda hacer `from subextract import config as _cfg`
- logger.py lea SILENT_MODE/DEBUG_MODE/LOG_LEVEL desde sys.modules
  sin importar nada (evita ciclos).

Solo parsea y expone constantes: nada de lógica de negocio aquí.
"""

from __future__ import annotations

from subextract import logger as _logger
from subextract.config_base import (  # noqa: F401
    DEBUG_MODE,
    HTTP_DEBUG,
    LOG_LEVEL,
    LOGGER_FILE_ENABLED,
    LOGGER_FILE_PATH,
    SILENT_MODE,
)
from subextract.config_subtitles import (  # noqa: F401
    EXTRACT_ENGLISH,
    EXTRACT_SPANISH,
    FFMPEG_PATH,
    FFMPEG_TIMEOUT_SECONDS,
    JELLYFIN_API_KEY,
    JELLYFIN_CB_FAILURE_THRESHOLD,
    JELLYFIN_CB_OPEN_SECONDS,
    JELLYFIN_HTTP_RETRY_BACKOFF_FACTOR,
    JELLYFIN_HTTP_RETRY_TOTAL,
    JELLYFIN_HTTP_TIMEOUT_SECONDS,
    JELLYFIN_MAX_RETRIES,
    JELLYFIN_URL,
    SELECTED_SUBTITLES_LIBRARIES,
    SUBTITLES_BASE_PATH,
    SUBTITLES_QUERY_PAGE_LIMIT,
    SUBTITLES_RUN_METRICS_ENABLED,
)


def _log_config_debug() -> None:
    # Dump solo en DEBUG y sin SILENT (no spamear). Nunca el API key.
    if not DEBUG_MODE or SILENT_MODE:
        return
    _logger.debug_ctx("CONFIG", f"JELLYFIN_URL={JELLYFIN_URL!r} api_key={'set' if JELLYFIN_API_KEY else 'missing'}")
    _logger.debug_ctx("CONFIG", f"SUBTITLES_BASE_PATH={SUBTITLES_BASE_PATH!r} page_limit={SUBTITLES_QUERY_PAGE_LIMIT}")
    _logger.debug_ctx(
        "CONFIG",
        f"EXTRACT_SPANISH={EXTRACT_SPANISH} EXTRACT_ENGLISH={EXTRACT_ENGLISH} "
        f"libraries={SELECTED_SUBTITLES_LIBRARIES!r}",
    )
    _logger.debug_ctx("CONFIG", f"FFMPEG_PATH={FFMPEG_PATH!r} timeout={FFMPEG_TIMEOUT_SECONDS}s")


_log_config_debug()
