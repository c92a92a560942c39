from __future__ import annotations

"""
subextract/jellyfin_client.py

Índice de biblioteca sobre la API REST de Jellyfin (implementa LibraryIndex).

Endpoints usados
----------------
- GET /Library/VirtualFolders      -> bibliotecas configuradas (Name, ItemId)
- GET /Items?...                   -> episodios paginados (+ TotalRecordCount)

Filtro de episodios (equivalente a la query interna del servidor):
    Recursive=true, IncludeItemTypes=Episode, MediaTypes=Video,
    IsMissing=false, ExcludeLocationTypes=Virtual, Fields=MediaSources,Path

Robustez
--------
- requests.Session con Retry de urllib3 (429/5xx) + HTTPAdapter.
- circuit breaker + retries con backoff (resilience.py) por endpoint.
- Métricas en run_metrics.METRICS ("jellyfin.*").
- Parseo tolerante: un item raro se descarta (debug + métrica) en vez de tumbar la
  página; EpisodePage.fetched sigue contándolo para que la paginación no se corte.
- Si tras todo eso la llamada falla -> JellyfinClientError (el orquestador NO
  puede paginar una biblioteca de forma fiable sin índice).
"""

import time
from collections.abc import Mapping, Sequence
from typing import Any, Final

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from subextract import logger as _logger
from subextract.errors import JellyfinClientError
from subextract.models import Episode, EpisodePage, LibraryFolder, MediaSource, MediaStream, normalize_item_id
from subextract.resilience import CircuitBreaker, call_with_resilience
from subextract.run_metrics import METRICS

_USER_AGENT: Final[str] = "subextract/0.1 (missing-subtitles-check)"

_EPISODE_QUERY: Final[dict[str, str]] = {
    "Recursive": "true",
    "IncludeItemTypes": "Episode",
    "MediaTypes": "Video",
    "IsMissing": "false",
    "ExcludeLocationTypes": "Virtual",
}


def build_session(*, api_key: str | None, retry_total: int, backoff_factor: float) -> requests.Session:
    """Session con retries de urllib3 para 429/5xx y cabecera de auth de Jellyfin."""
    session = requests.Session()

    retries = Retry(
        total=max(0, int(retry_total)),
        backoff_factor=max(0.0, float(backoff_factor)),
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET",),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retries, pool_connections=2, pool_maxsize=2)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    session.headers.update({"User-Agent": _USER_AGENT, "Accept": "application/json"})
    if api_key:
        session.headers["X-Emby-Token"] = api_key
    return session


def _should_retry(exc: Exception) -> bool:
    """Red/timeout/5xx se reintentan; 4xx y JSON inválido no (no van a mejorar)."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError):
        status = getattr(exc.response, "status_code", None)
        return isinstance(status, int) and status >= 500
    return False


# ============================================================
# Parseo JSON -> modelos
# ============================================================


def _str_or_none(value: object) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def parse_media_stream(raw: Mapping[str, Any]) -> MediaStream:
    index = raw.get("Index")
    return MediaStream(
        type=str(raw.get("Type") or ""),
        index=int(index) if isinstance(index, int) and not isinstance(index, bool) else -1,
        language=_str_or_none(raw.get("Language")),
        codec=_str_or_none(raw.get("Codec")),
        is_external=bool(raw.get("IsExternal", False)),
        title=_str_or_none(raw.get("DisplayTitle") or raw.get("Title")),
    )


def parse_media_source(raw: Mapping[str, Any]) -> MediaSource:
    streams = raw.get("MediaStreams") or []
    return MediaSource(
        id=normalize_item_id(str(raw.get("Id"))),
        path=str(raw.get("Path") or ""),
        streams=tuple(parse_media_stream(s) for s in streams if isinstance(s, Mapping)),
    )


def parse_episode(raw: Mapping[str, Any]) -> Episode:
    sources = raw.get("MediaSources") or []
    return Episode(
        id=normalize_item_id(str(raw.get("Id"))),
        name=str(raw.get("Name") or ""),
        sources=tuple(parse_media_source(s) for s in sources if isinstance(s, Mapping)),
    )


# ============================================================
# Cliente
# ============================================================


class JellyfinLibraryIndex:
    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        session: requests.Session | None = None,
        timeout_seconds: float = 10.0,
        retry_total: int = 2,
        retry_backoff_factor: float = 0.5,
        breaker: CircuitBreaker | None = None,
        max_retries: int = 2,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or build_session(
            api_key=api_key, retry_total=retry_total, backoff_factor=retry_backoff_factor
        )
        self._timeout = float(timeout_seconds)
        self._breaker = breaker or CircuitBreaker()
        self._max_retries = max(0, int(max_retries))

    @classmethod
    def from_config(cls) -> JellyfinLibraryIndex:
        from subextract import config as _cfg

        if not _cfg.JELLYFIN_API_KEY:
            _logger.warning("[JELLYFIN] JELLYFIN_API_KEY no configurada; las peticiones pueden fallar (401)", always=True)

        return cls(
            _cfg.JELLYFIN_URL,
            api_key=_cfg.JELLYFIN_API_KEY,
            timeout_seconds=_cfg.JELLYFIN_HTTP_TIMEOUT_SECONDS,
            retry_total=_cfg.JELLYFIN_HTTP_RETRY_TOTAL,
            retry_backoff_factor=_cfg.JELLYFIN_HTTP_RETRY_BACKOFF_FACTOR,
            breaker=CircuitBreaker(
                failure_threshold=_cfg.JELLYFIN_CB_FAILURE_THRESHOLD,
                open_seconds=_cfg.JELLYFIN_CB_OPEN_SECONDS,
            ),
            max_retries=_cfg.JELLYFIN_MAX_RETRIES,
        )

    # --------------------------------------------------------

    def _get_json(self, path: str, *, action: str, params: Mapping[str, str] | None = None) -> Any:
        url = f"{self._base_url}{path}"
        key = f"jellyfin:{path}"

        def _do() -> Any:
            resp = self._session.get(url, params=dict(params or {}), timeout=self._timeout)
            resp.raise_for_status()
            return resp.json()

        t0 = time.monotonic()
        METRICS.incr(f"jellyfin.{action}.calls")
        data, status = call_with_resilience(
            breaker=self._breaker,
            key=key,
            fn=_do,
            should_retry=_should_retry,
            max_retries=self._max_retries,
        )
        METRICS.observe_ms(f"jellyfin.{action}.latency_ms", (time.monotonic() - t0) * 1000.0)

        if status == "ok":
            return data

        METRICS.incr(f"jellyfin.{action}.errors")
        METRICS.add_error("jellyfin", action, endpoint=path, detail=status)
        if status.startswith("circuit_open"):
            _logger.warning(f"[JELLYFIN] Circuit OPEN para {path} ({action}) -> se omite.", always=True)
        raise JellyfinClientError(action, status)

    def _episode_params(self, root_id: str | None) -> dict[str, str]:
        params = dict(_EPISODE_QUERY)
        if root_id:
            params["ParentId"] = root_id
        return params

    # --------------------------------------------------------
    # LibraryIndex
    # --------------------------------------------------------

    def list_virtual_folders(self) -> list[LibraryFolder]:
        data = self._get_json("/Library/VirtualFolders", action="virtual_folders")
        folders: list[LibraryFolder] = []
        for raw in data if isinstance(data, list) else []:
            if not isinstance(raw, Mapping):
                continue
            name = _str_or_none(raw.get("Name"))
            item_id = _str_or_none(raw.get("ItemId"))
            if name and item_id:
                folders.append(LibraryFolder(name=name, item_id=item_id))
        return folders

    def resolve_library_roots_by_name(self, names: Sequence[str]) -> list[str]:
        wanted = set(names)
        roots: list[str] = []
        for folder in self.list_virtual_folders():
            if folder.name not in wanted:
                continue
            try:
                root_id = normalize_item_id(folder.item_id)
            except ValueError:
                _logger.debug_ctx("JELLYFIN", f"ItemId inválido en biblioteca {folder.name!r}: {folder.item_id!r}")
                continue
            if root_id not in roots:
                roots.append(root_id)
        return roots

    def count_episodes(self, root_id: str | None) -> int:
        params = self._episode_params(root_id)
        params.update({"Limit": "0", "EnableTotalRecordCount": "true"})
        data = self._get_json("/Items", action="items_count", params=params)
        total = data.get("TotalRecordCount") if isinstance(data, Mapping) else None
        if not isinstance(total, int) or total < 0:
            raise JellyfinClientError("items_count", f"TotalRecordCount inválido: {total!r}")
        return total

    def list_episodes_page(self, root_id: str | None, start_index: int, page_size: int) -> EpisodePage:
        params = self._episode_params(root_id)
        params.update(
            {
                "StartIndex": str(int(start_index)),
                "Limit": str(int(page_size)),
                "Fields": "MediaSources,Path",
                "EnableTotalRecordCount": "false",
            }
        )
        data = self._get_json("/Items", action="items_page", params=params)
        raw_items = data.get("Items") if isinstance(data, Mapping) else None
        items = raw_items if isinstance(raw_items, list) else []

        episodes: list[Episode] = []
        for raw in items:
            if not isinstance(raw, Mapping):
                METRICS.incr("jellyfin.items_page.bad_items")
                continue
            try:
                episodes.append(parse_episode(raw))
            except (TypeError, ValueError) as exc:
                METRICS.incr("jellyfin.items_page.bad_items")
                _logger.debug_ctx("JELLYFIN", f"Item descartado (Id={raw.get('Id')!r}): {exc!r}")
        # fetched incluye los descartados: el orquestador solo corta con una página realmente vacía
        return EpisodePage(episodes=tuple(episodes), fetched=len(items))
