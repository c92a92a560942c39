"""
subextract/config_base.py

Lectura de variables de entorno para el resto de módulos config_*.

- .env se carga una sola vez, sin pisar lo que ya viene del entorno
  (docker/systemd mandan sobre el fichero).
- Cada helper devuelve siempre un valor usable: si la variable no parsea se
  avisa (always=True) y se usa el default; si se sale de rango se acota.
- Flags de ejecución que lee logger.py (DEBUG/SILENT/LOG_LEVEL/HTTP_DEBUG y el
  fichero de log opcional).

Este módulo NO debe importar config_*.py para evitar ciclos.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Final, TypeVar

from dotenv import load_dotenv

load_dotenv(override=False)

from subextract import logger as _logger  # noqa: E402

_N = TypeVar("_N", int, float)

_BOOL_WORDS: Final[dict[str, bool]] = {
    **dict.fromkeys(("1", "true", "t", "yes", "y", "on", "si", "sí"), True),
    **dict.fromkeys(("0", "false", "f", "no", "n", "off"), False),
}


def _raw_env(name: str) -> str | None:
    """Valor recortado y sin comillas envolventes; None si falta o queda vacío."""
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        value = value[1:-1].strip()
    return value or None


def _env_str(name: str, default: str | None = None) -> str | None:
    value = _raw_env(name)
    return default if value is None else value


def _clamp(name: str, value: _N, *, min_v: _N, max_v: _N | None = None) -> _N:
    if value < min_v:
        _logger.warning(f"{name}={value} por debajo de {min_v}; se usa {min_v}", always=True)
        return min_v
    if max_v is not None and value > max_v:
        _logger.warning(f"{name}={value} por encima de {max_v}; se usa {max_v}", always=True)
        return max_v
    return value


def _env_number(
    name: str,
    default: _N,
    cast: Callable[[str], _N],
    *,
    min_v: _N | None = None,
    max_v: _N | None = None,
) -> _N:
    raw = _raw_env(name)
    value = default
    if raw is not None:
        try:
            value = cast(raw)
        except ValueError:
            _logger.warning(f"{name}={raw!r} no es un {cast.__name__}; se usa {default}", always=True)
    if min_v is None:
        return value
    return _clamp(name, value, min_v=min_v, max_v=max_v)


def _env_int(name: str, default: int, *, min_v: int | None = None, max_v: int | None = None) -> int:
    return _env_number(name, default, int, min_v=min_v, max_v=max_v)


def _env_float(name: str, default: float, *, min_v: float | None = None) -> float:
    return _env_number(name, default, float, min_v=min_v)


def _env_bool(name: str, default: bool) -> bool:
    raw = _raw_env(name)
    if raw is None:
        return default
    parsed = _BOOL_WORDS.get(raw.lower())
    if parsed is None:
        _logger.warning(f"{name}={raw!r} no es un booleano; se usa {default}", always=True)
        return default
    return parsed


def _parse_env_csv_list(raw: str | None) -> list[str]:
    """
    "Series, Anime ,Series" -> ["Series", "Anime"].

    Los nombres de biblioteca se comparan tal cual en el servidor: se respeta
    mayúscula/minúscula y el orden, y solo se quitan huecos y repetidos.
    """
    text = (raw or "").strip().strip("'\"")
    names = (part.strip() for part in text.split(","))
    return list(dict.fromkeys(n for n in names if n))


def _env_csv(name: str) -> list[str]:
    return _parse_env_csv_list(_raw_env(name))


# ============================================================
# MODO DE EJECUCIÓN (lo lee logger.py vía subextract.config)
# ============================================================

DEBUG_MODE: bool = _env_bool("DEBUG_MODE", False)
SILENT_MODE: bool = _env_bool("SILENT_MODE", False)
HTTP_DEBUG: bool = _env_bool("HTTP_DEBUG", False)
LOG_LEVEL: str | None = _env_str("LOG_LEVEL")

# Fichero de log opcional. Un LOGGER_FILE_PATH en el entorno gana siempre
# (logger.py lo relee al configurar el handler).
LOGGER_FILE_ENABLED: bool = _env_bool("LOGGER_FILE_ENABLED", False)
LOGGER_FILE_PATH: Path | None = (
    Path(_env_str("LOGGER_FILE_PATH", "subextract.log") or "subextract.log") if LOGGER_FILE_ENABLED else None
)
