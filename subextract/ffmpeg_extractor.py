from __future__ import annotations

"""
subextract/ffmpeg_extractor.py

Extracción de pistas de subtítulos embebidas con ffmpeg.

Implementa a la vez:
- SubtitleExtractor.extract_all_extractable_subtitles(media_source)
- SubtitlePathResolver.get_subtitle_file_path(stream, media_source)

Ambas usan el MISMO layout que el locator (subtitle_artifacts.artifact_dir_for):

    <base>/<2 chars>/<media source id>/<stream index>.<ext>

que es también el layout de la caché de subtítulos del servidor.

Reglas
------
- Extraíble = pista embebida (no externa) con códec de texto. Las de imagen
  (PGS/DVD/DVB) no se extraen, pero tienen ruta (sup/sub) para poder dejar
  placeholder si el filtro de idioma las descarta.
- Una invocación de ffmpeg por pista, a un temporal en el mismo directorio y
  os.replace() atómico: nunca queda un .srt a medias que cuente como válido.
- Una salida previa con tamaño > 0 se respeta (no se re-extrae).
- Cualquier fallo de ffmpeg -> SubtitleExtractionError (el orquestador lo
  captura por episodio).
"""

import os
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Final

from subextract import logger as _logger
from subextract.errors import SubtitleExtractionError
from subextract.models import MediaSource, MediaStream
from subextract.run_metrics import METRICS
from subextract.subtitle_artifacts import artifact_dir_for

# códec (ffprobe / Jellyfin) -> extensión en caché
TEXT_CODEC_EXTENSIONS: Final[dict[str, str]] = {
    "subrip": "srt",
    "srt": "srt",
    "ass": "ass",
    "ssa": "ssa",
    "webvtt": "vtt",
    "mov_text": "srt",
    "text": "srt",
}

IMAGE_CODEC_EXTENSIONS: Final[dict[str, str]] = {
    "pgssub": "sup",
    "hdmv_pgs_subtitle": "sup",
    "pgs": "sup",
    "dvdsub": "sub",
    "dvd_subtitle": "sub",
    "dvbsub": "sub",
    "dvb_subtitle": "sub",
}

# extensión -> encoder de ffmpeg
_ENCODER_BY_EXTENSION: Final[dict[str, str]] = {
    "srt": "srt",
    "ass": "ass",
    "ssa": "ssa",
    "vtt": "webvtt",
}

_STDERR_TAIL_CHARS: Final[int] = 400


def extension_for_codec(codec: str | None) -> str:
    c = (codec or "").strip().lower()
    return TEXT_CODEC_EXTENSIONS.get(c) or IMAGE_CODEC_EXTENSIONS.get(c) or "sub"


def is_extractable(stream: MediaStream) -> bool:
    if not stream.is_subtitle or stream.is_external or stream.index < 0:
        return False
    return (stream.codec or "").strip().lower() in TEXT_CODEC_EXTENSIONS


class FfmpegSubtitleExtractor:
    def __init__(
        self,
        base_path: str | os.PathLike[str],
        *,
        ffmpeg_path: str = "ffmpeg",
        timeout_seconds: float = 600.0,
    ) -> None:
        self._base_path = Path(base_path)
        self._ffmpeg = ffmpeg_path
        self._timeout = float(timeout_seconds)

    @classmethod
    def from_config(cls, base_path: str | os.PathLike[str] | None = None) -> FfmpegSubtitleExtractor:
        from subextract import config as _cfg

        return cls(
            base_path if base_path is not None else _cfg.SUBTITLES_BASE_PATH,
            ffmpeg_path=_cfg.FFMPEG_PATH,
            timeout_seconds=_cfg.FFMPEG_TIMEOUT_SECONDS,
        )

    # --------------------------------------------------------
    # SubtitlePathResolver
    # --------------------------------------------------------

    def get_subtitle_file_path(self, stream: MediaStream, media_source: MediaSource) -> Path | None:
        # Los subtítulos externos son ficheros del usuario: no viven en la caché.
        if stream.is_external or stream.index < 0:
            return None
        ext = extension_for_codec(stream.codec)
        return artifact_dir_for(media_source.id, self._base_path) / f"{stream.index}.{ext}"

    # --------------------------------------------------------
    # SubtitleExtractor
    # --------------------------------------------------------

    def extract_all_extractable_subtitles(self, media_source: MediaSource) -> None:
        streams = [s for s in media_source.subtitle_streams() if is_extractable(s)]
        if not streams:
            _logger.debug_ctx("FFMPEG", f"{media_source.path or media_source.id}: sin pistas de texto extraíbles")
            return

        if not media_source.path:
            raise SubtitleExtractionError("", streams[0].index, "media source sin ruta de fichero")

        for stream in streams:
            target = self.get_subtitle_file_path(stream, media_source)
            if target is None:
                continue
            try:
                if target.stat().st_size > 0:
                    METRICS.incr("ffmpeg.extract.already_present")
                    continue
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise SubtitleExtractionError(media_source.path, stream.index, f"stat {target}: {exc!r}") from exc

            self._extract_stream(media_source.path, stream, target)

    def _build_command(self, media_path: str, stream: MediaStream, output: Path) -> list[str]:
        encoder = _ENCODER_BY_EXTENSION.get(extension_for_codec(stream.codec), "srt")
        return [
            self._ffmpeg,
            "-nostdin",
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-i",
            media_path,
            "-map",
            f"0:{stream.index}",
            "-c:s",
            encoder,
            str(output),
        ]

    def _extract_stream(self, media_path: str, stream: MediaStream, target: Path) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".tmp_", suffix=target.suffix, dir=str(target.parent))
            os.close(fd)
        except OSError as exc:
            raise SubtitleExtractionError(media_path, stream.index, f"no se pudo preparar {target}: {exc!r}") from exc

        cmd = self._build_command(media_path, stream, Path(tmp_name))
        _logger.debug_ctx("FFMPEG", f"cmd={cmd!r}")

        committed = False
        t0 = time.monotonic()
        try:
            try:
                subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=self._timeout)
            except FileNotFoundError as exc:
                raise SubtitleExtractionError(
                    media_path, stream.index, f"ffmpeg no encontrado: {self._ffmpeg!r}"
                ) from exc
            os.replace(tmp_name, target)
            committed = True
        except subprocess.TimeoutExpired as exc:
            raise SubtitleExtractionError(media_path, stream.index, f"timeout tras {self._timeout:.0f}s") from exc
        except subprocess.CalledProcessError as exc:
            tail = (exc.stderr or "").strip()[-_STDERR_TAIL_CHARS:]
            METRICS.add_error("ffmpeg", "extract", endpoint=media_path, detail=f"exit {exc.returncode}: {tail}")
            raise SubtitleExtractionError(media_path, stream.index, f"exit {exc.returncode}: {tail}") from exc
        except OSError as exc:
            raise SubtitleExtractionError(media_path, stream.index, repr(exc)) from exc
        finally:
            METRICS.observe_ms("ffmpeg.extract.latency_ms", (time.monotonic() - t0) * 1000.0)
            if not committed:
                try:
                    os.remove(tmp_name)
                except OSError:
                    pass

        METRICS.incr("ffmpeg.extract.streams")
        label = stream.language or "sin idioma"
        if stream.title:
            label = f"{label}, {stream.title!r}"
        _logger.info(f"[FFMPEG] Extraído stream {stream.index} ({label}) -> {target}")
