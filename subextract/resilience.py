from __future__ import annotations

"""
subextract/resilience.py

Retry con backoff+jitter + circuit breaker simple por clave (endpoint).
Lo usa jellyfin_client.py alrededor de cada GET.

Circuit breaker:
    CLOSED    -> normal
    OPEN      -> bloquea hasta que pasen `open_seconds`
    HALF_OPEN -> deja pasar `half_open_max_calls` sondas; éxito => CLOSED, fallo => OPEN

No impone logging: devuelve estados para que el caller use subextract/logger.py.
"""

import random
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Final, TypeVar

T = TypeVar("T")

CLOSED: Final[str] = "CLOSED"
OPEN: Final[str] = "OPEN"
HALF_OPEN: Final[str] = "HALF_OPEN"


@dataclass
class CircuitState:
    failures: int = 0
    opened_at: float = 0.0
    state: str = CLOSED
    last_error: str = ""
    half_open_inflight: int = 0


class CircuitBreaker:
    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        open_seconds: float = 20.0,
        half_open_max_calls: int = 1,
    ) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, CircuitState] = {}
        self._failure_threshold = max(1, int(failure_threshold))
        self._open_seconds = max(0.1, float(open_seconds))
        self._half_open_max_calls = max(1, int(half_open_max_calls))

    def _state_for(self, key: str) -> tuple[CircuitState, bool]:
        st = self._states.get(key)
        if st is None:
            st = CircuitState()
            self._states[key] = st
            return st, True
        return st, False

    def allow(self, key: str) -> tuple[bool, str]:
        """Returns: (allowed, reason)."""
        now = time.monotonic()
        with self._lock:
            st, created = self._state_for(key)
            if created:
                return True, "closed:new"

            if st.state == CLOSED:
                return True, "closed"

            if st.state == OPEN:
                if (now - st.opened_at) < self._open_seconds:
                    return False, "open"
                st.state = HALF_OPEN
                st.half_open_inflight = 0
                return True, "half_open:cooldown_elapsed"

            if st.half_open_inflight >= self._half_open_max_calls:
                return False, "half_open:quota_reached"
            st.half_open_inflight += 1
            return True, "half_open:probe"

    def on_success(self, key: str) -> None:
        with self._lock:
            self._states[key] = CircuitState()

    def on_failure(self, key: str, *, error: str) -> None:
        now = time.monotonic()
        with self._lock:
            st, _ = self._state_for(key)
            st.failures += 1
            st.last_error = str(error)[:500]

            # Fallo de una sonda HALF_OPEN o umbral alcanzado -> OPEN
            if st.state == HALF_OPEN or st.failures >= self._failure_threshold:
                st.state = OPEN
                st.opened_at = now
                st.half_open_inflight = 0

    def debug_state(self, key: str) -> CircuitState | None:
        with self._lock:
            st = self._states.get(key)
            return None if st is None else replace(st)


def backoff_delay(attempt: int, *, base: float = 0.35, cap: float = 6.0, jitter: float = 0.35) -> float:
    """base * 2^attempt, con tope y jitter (+-jitter relativo)."""
    delay = min(cap, base * (2 ** max(0, int(attempt))))
    if jitter > 0:
        delay *= 1.0 + random.uniform(-jitter, jitter)
    return max(0.0, delay)


def backoff_sleep(attempt: int) -> None:
    time.sleep(backoff_delay(attempt))


def call_with_resilience(
    *,
    breaker: CircuitBreaker,
    key: str,
    fn: Callable[[], T],
    should_retry: Callable[[Exception], bool],
    max_retries: int = 2,
) -> tuple[T | None, str]:
    """
    Ejecuta fn() con circuit breaker + retries con backoff.

    Returns: (result_or_none, status) con status:
      - "ok"
      - "circuit_open:<reason>"
      - "error:<repr(exc)>"

    Solo captura Exception: KeyboardInterrupt/SystemExit siempre se propagan.
    """
    allowed, reason = breaker.allow(key)
    if not allowed:
        return None, f"circuit_open:{reason}"

    last_exc: Exception | None = None
    for attempt in range(max(0, int(max_retries)) + 1):
        try:
            out = fn()
        except Exception as exc:
            last_exc = exc
            breaker.on_failure(key, error=repr(exc))
            if attempt >= max_retries or not should_retry(exc):
                break
            backoff_sleep(attempt)
            continue
        breaker.on_success(key)
        return out, "ok"

    return None, f"error:{last_exc!r}"
