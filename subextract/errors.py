"""
subextract/errors.py

Jerarquía de excepciones del proyecto.

- OperationCancelledError se propaga siempre (aborta el run).
- JellyfinClientError se propaga desde el orquestador (no se puede paginar una
  biblioteca de forma fiable si el índice falla).
- SubtitleExtractionError se captura por episodio en el orquestador.

Los fallos de filesystem (OSError) NO tienen excepción propia: se recuperan
localmente en subtitle_artifacts.py / subtitle_cleanup.py.
"""

from __future__ import annotations


class SubExtractError(Exception):
    """Base de todas las excepciones propias."""


class OperationCancelledError(SubExtractError):
    """La cancelación cooperativa se ha solicitado durante el run."""


class JellyfinClientError(SubExtractError):
    """Fallo de transporte/protocolo contra Jellyfin tras retries y circuit breaker."""

    def __init__(self, action: str, detail: str) -> None:
        super().__init__(f"{action}: {detail}")
        self.action = action
        self.detail = detail


class SubtitleExtractionError(SubExtractError):
    """ffmpeg no pudo extraer una pista de subtítulos."""

    def __init__(self, media_path: str, stream_index: int, detail: str) -> None:
        super().__init__(f"{media_path} [stream {stream_index}]: {detail}")
        self.media_path = media_path
        self.stream_index = stream_index
        self.detail = detail
