from __future__ import annotations

"""
subextract/subtitle_artifacts.py

Localización de subtítulos ya extraídos en la caché en disco.

Layout (compartido con el extractor, ver ffmpeg_extractor.py):

    <base>/<2 primeros chars del id>/<id canónico>/<index>.<ext>

    p.ej. /config/data/subtitles/04/047cd2da-002a-2bd0-eab6-aaaccbed3dd2/3.srt

has_extracted_subtitles() es la "puerta" de idempotencia del scan:
- barata (solo listdir + stat, sin leer contenido)
- sin efectos secundarios
- fail-safe: ante un error de filesystem responde False, lo que provoca
  re-extracción en lugar de saltarse el episodio en silencio.

Un fichero de 0 bytes NO cuenta como subtítulo extraído: es el placeholder que
deja subtitle_cleanup.py para idiomas descartados.
"""

import os
from pathlib import Path

from subextract import logger as _logger
from subextract.models import normalize_item_id


def artifact_dir_for(item_id: str, base_path: str | os.PathLike[str]) -> Path:
    """
    Directorio shard-leaf de un item.

    Única derivación id -> ruta del proyecto: la usan tanto el locator como el
    extractor, así nunca divergen.
    """
    canonical = normalize_item_id(item_id)
    return Path(base_path) / canonical[:2] / canonical


def has_extracted_subtitles(episode_id: str, base_path: str | os.PathLike[str]) -> bool:
    """True si el directorio del episodio contiene al menos un fichero con tamaño > 0."""
    subtitle_dir = artifact_dir_for(episode_id, base_path)

    if not subtitle_dir.is_dir():
        return False

    try:
        with os.scandir(subtitle_dir) as entries:
            for entry in entries:
                if not entry.is_file(follow_symlinks=True):
                    continue
                if entry.stat(follow_symlinks=True).st_size > 0:
                    return True
    except OSError as exc:
        _logger.error(
            f"[SUBS] Error revisando el directorio de subtítulos del episodio {episode_id}: {exc!r}",
            always=True,
        )
        return False

    return False


def purge_artifacts(item_id: str, base_path: str | os.PathLike[str]) -> int:
    """
    Borra los ficheros (no recursivo) del directorio shard-leaf de un item.

    Se usa para deshacer un episodio a medio extraer: así has_extracted_subtitles()
    no puede dar por bueno un episodio incompleto en el siguiente run.
    Devuelve el número de ficheros borrados; los fallos por fichero se loguean.
    """
    subtitle_dir = artifact_dir_for(item_id, base_path)
    if not subtitle_dir.is_dir():
        return 0

    removed = 0
    try:
        files = [p for p in subtitle_dir.iterdir() if p.is_file()]
    except OSError as exc:
        _logger.warning(f"[SUBS] No se pudo listar {subtitle_dir}: {exc!r}", always=True)
        return 0

    for path in files:
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            _logger.warning(f"[SUBS] No se pudo borrar {path}: {exc!r}", always=True)

    if removed:
        _logger.info(f"[SUBS] Purga de {subtitle_dir}: {removed} fichero(s) eliminados")
    return removed
