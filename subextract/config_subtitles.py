from __future__ import annotations

from subextract.config_base import _env_bool, _env_csv, _env_float, _env_int, _env_str

# ============================================================
# JELLYFIN (índice de biblioteca)
# ============================================================

JELLYFIN_URL: str = (_env_str("JELLYFIN_URL", "http://localhost:8096") or "http://localhost:8096").rstrip("/")
JELLYFIN_API_KEY: str | None = _env_str("JELLYFIN_API_KEY")

JELLYFIN_HTTP_TIMEOUT_SECONDS: float = _env_float("JELLYFIN_HTTP_TIMEOUT_SECONDS", 10.0, min_v=0.5)
JELLYFIN_HTTP_RETRY_TOTAL: int = _env_int("JELLYFIN_HTTP_RETRY_TOTAL", 2, min_v=0, max_v=10)
JELLYFIN_HTTP_RETRY_BACKOFF_FACTOR: float = _env_float("JELLYFIN_HTTP_RETRY_BACKOFF_FACTOR", 0.5, min_v=0.0)

JELLYFIN_CB_FAILURE_THRESHOLD: int = _env_int("JELLYFIN_CB_FAILURE_THRESHOLD", 5, min_v=1, max_v=100)
JELLYFIN_CB_OPEN_SECONDS: float = _env_float("JELLYFIN_CB_OPEN_SECONDS", 20.0, min_v=0.1)
JELLYFIN_MAX_RETRIES: int = _env_int("JELLYFIN_MAX_RETRIES", 2, min_v=0, max_v=10)


# ============================================================
# SUBTÍTULOS (scan + filtro de idioma)
# ============================================================

# Raíz de la caché de subtítulos extraídos: <base>/<2 chars>/<id>/
SUBTITLES_BASE_PATH: str = _env_str("SUBTITLES_BASE_PATH", "/config/data/subtitles") or "/config/data/subtitles"

SUBTITLES_QUERY_PAGE_LIMIT: int = _env_int("SUBTITLES_QUERY_PAGE_LIMIT", 250, min_v=1, max_v=5000)

EXTRACT_SPANISH: bool = _env_bool("EXTRACT_SPANISH", True)
EXTRACT_ENGLISH: bool = _env_bool("EXTRACT_ENGLISH", True)

# Vacío = todas las bibliotecas
SELECTED_SUBTITLES_LIBRARIES: list[str] = _env_csv("SELECTED_SUBTITLES_LIBRARIES")

SUBTITLES_RUN_METRICS_ENABLED: bool = _env_bool("SUBTITLES_RUN_METRICS_ENABLED", True)


# ============================================================
# FFMPEG (extracción)
# ============================================================

FFMPEG_PATH: str = _env_str("FFMPEG_PATH", "ffmpeg") or "ffmpeg"
FFMPEG_TIMEOUT_SECONDS: float = _env_float("FFMPEG_TIMEOUT_SECONDS", 600.0, min_v=1.0)
