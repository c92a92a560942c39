from __future__ import annotations

"""
subextract/logger.py

Logger central del proyecto (fachada sobre `logging`).

API estable
-----------
- debug / info / warning / error
- progress / progressf (siempre visible, sin timestamps)
- debug_ctx(tag, msg) (debug contextual alineado con SILENT/DEBUG)

Política
--------
- SILENT_MODE=True: suprime debug/info/warning (salvo always=True). `error()` siempre emite.
- DEBUG_MODE=True: permite trazas útiles; en SILENT+DEBUG se emiten por `progress`.
- El logging nunca debe romper el scan de subtítulos.

Salida opcional a fichero
-------------------------
Este módulo NO decide nombres. Solo consume variables desde subextract.config
(si ya está importado):

- LOGGER_FILE_ENABLED: bool
- LOGGER_FILE_PATH: Path | str | None

Prioridad del path: ENV LOGGER_FILE_PATH > subextract.config.LOGGER_FILE_PATH > None.

Notas técnicas
--------------
- No importamos `subextract.config` directamente (evitamos circular imports).
  Lo leemos desde `sys.modules` si ya está importado.
- Inicialización idempotente.
- Best-effort: si no se puede abrir el fichero, seguimos solo con consola.
"""

import logging
import os
import sys
import threading
from types import ModuleType, TracebackType
from typing import Final, Mapping, TypedDict

from typing_extensions import TypeAlias, Unpack

# ============================================================================
# TIPOS: kwargs seguros para logging
# ============================================================================

_ExcInfoTuple: TypeAlias = tuple[type[BaseException], BaseException, TracebackType | None]
ExcInfo: TypeAlias = bool | _ExcInfoTuple | BaseException | None


class LogKwargs(TypedDict, total=False):
    """Subconjunto de kwargs de logging.Logger.* que reenviamos tal cual."""

    exc_info: ExcInfo
    stack_info: bool
    stacklevel: int
    extra: Mapping[str, object] | None


# ============================================================================
# CONFIGURACIÓN GLOBAL
# ============================================================================

LOGGER_NAME: Final[str] = "subextract"
CONFIG_MODULE: Final[str] = "subextract.config"

_LOGGER: logging.Logger | None = None
_CONFIGURED: bool = False

_FILE_HANDLER_TAG: Final[str] = "_subextract_file_handler"
_PROGRESS_FILE_LOCK = threading.Lock()

_LEVELS: Final[dict[str, int]] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_NOISY_LOGGERS: Final[tuple[str, ...]] = (
    "urllib3",
    "urllib3.connectionpool",
    "requests",
)


# ============================================================================
# FLAGS (sin importar subextract.config directamente)
# ============================================================================


def _safe_get_cfg() -> ModuleType | None:
    mod = sys.modules.get(CONFIG_MODULE)
    return mod if isinstance(mod, ModuleType) else None


def _cfg_bool(name: str, default: bool = False) -> bool:
    cfg = _safe_get_cfg()
    if cfg is None:
        return default
    try:
        return bool(getattr(cfg, name, default))
    except Exception:
        return default


def _cfg_str(name: str, default: str | None = None) -> str | None:
    cfg = _safe_get_cfg()
    if cfg is None:
        return default
    try:
        v = getattr(cfg, name, default)
        if v is None:
            return None
        s = str(v).strip()
        return s or default
    except Exception:
        return default


def is_silent_mode() -> bool:
    return _cfg_bool("SILENT_MODE", False)


def is_debug_mode() -> bool:
    return _cfg_bool("DEBUG_MODE", False)


def _resolve_level_from_config() -> int:
    """
    Nivel del root logger.

    Prioridad:
      1) LOG_LEVEL explícito
      2) DEBUG_MODE
      3) INFO
    """
    lvl = _cfg_str("LOG_LEVEL", None)
    if lvl:
        mapped = _LEVELS.get(lvl.upper())
        if mapped is not None:
            return mapped
    if is_debug_mode():
        return logging.DEBUG
    return logging.INFO


def _configure_external_loggers() -> None:
    """Baja urllib3/requests a WARNING salvo HTTP_DEBUG=True."""
    if _cfg_bool("HTTP_DEBUG", False):
        return
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ============================================================================
# FILE LOGGING (opcional)
# ============================================================================


def _file_logging_path() -> str | None:
    if not _cfg_bool("LOGGER_FILE_ENABLED", False):
        return None
    env_p = (os.getenv("LOGGER_FILE_PATH") or "").strip()
    if env_p:
        return env_p
    return _cfg_str("LOGGER_FILE_PATH", None)


def _ensure_file_handler(root: logging.Logger, *, level: int) -> None:
    path = _file_logging_path()
    if not path:
        return

    for h in root.handlers:
        if getattr(h, _FILE_HANDLER_TAG, False):
            h.setLevel(level)
            return

    try:
        dir_name = os.path.dirname(path)
        if dir_name:
            os.makedirs(dir_name, exist_ok=True)
        fh = logging.FileHandler(path, mode="a", encoding="utf-8", delay=True)
    except OSError:
        return

    fh.setLevel(level)
    fh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    setattr(fh, _FILE_HANDLER_TAG, True)
    root.addHandler(fh)


def _append_progress_to_file(message: str) -> None:
    path = _file_logging_path()
    if not path:
        return
    try:
        with _PROGRESS_FILE_LOCK:
            with open(path, "a", encoding="utf-8") as f:
                f.write(f"{message}\n")
    except OSError:
        return


# ============================================================================
# INICIALIZACIÓN
# ============================================================================


def _ensure_configured() -> logging.Logger:
    """Inicializa logging de forma idempotente y devuelve el logger principal."""
    global _LOGGER, _CONFIGURED

    level = _resolve_level_from_config()
    root = logging.getLogger()

    if not _CONFIGURED or _LOGGER is None:
        if not root.handlers:
            logging.basicConfig(
                level=level,
                format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            )
        _LOGGER = logging.getLogger(LOGGER_NAME)
        _CONFIGURED = True

    root.setLevel(level)
    _LOGGER.setLevel(level)
    _configure_external_loggers()
    _ensure_file_handler(root, level=level)
    return _LOGGER


def get_logger() -> logging.Logger:
    return _ensure_configured()


def _should_log(*, always: bool = False) -> bool:
    return always or not is_silent_mode()


# ============================================================================
# PROGRESO / HEARTBEAT (NO logging)
# ============================================================================


def progress(message: str) -> None:
    """Línea siempre visible (ignora SILENT_MODE). Se duplica a fichero si procede."""
    try:
        sys.stdout.write(f"{message}\n")
        sys.stdout.flush()
    except Exception:
        pass
    _append_progress_to_file(message)


def progressf(fmt: str, *args: object) -> None:
    try:
        msg = fmt % args if args else fmt
    except (TypeError, ValueError):
        msg = fmt
    progress(msg)


# ============================================================================
# API PÚBLICA DE LOGGING
# ============================================================================


def debug(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    if not _should_log(always=always):
        return
    _ensure_configured().debug(msg, *args, **kwargs)


def info(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    if not _should_log(always=always):
        return
    _ensure_configured().info(msg, *args, **kwargs)


def warning(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    if not _should_log(always=always):
        return
    _ensure_configured().warning(msg, *args, **kwargs)


def error(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    """ERROR siempre se emite (ignora SILENT_MODE)."""
    _ensure_configured().error(msg, *args, **kwargs)


def debug_ctx(tag: str, msg: object) -> None:
    """
    Debug contextual con tag.

    - DEBUG_MODE=False -> no-op
    - DEBUG_MODE=True:
        * SILENT_MODE=True  -> progress("[TAG][DEBUG] ...")
        * SILENT_MODE=False -> info("[TAG][DEBUG] ...")
    """
    if not is_debug_mode():
        return

    t = (tag or "DEBUG").strip().upper()
    text = f"[{t}][DEBUG] {msg}"
    if is_silent_mode():
        progress(text)
    else:
        info(text)
