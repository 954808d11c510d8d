"""
Politica de reintentos compartida por los clientes GraphQL y REST.

Estrategia:
- Solo se reintentan errores de transporte (conexion reseteada, timeout,
  5xx del gateway). Una respuesta bien formada con errores NO se reintenta.
- Backoff exponencial: base_delay_s * 2**intento.
- HTTP 504 espera `slow_multiplier` veces mas (el servidor esta saturado).
- Agotados los intentos se relanza la excepcion original.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

T = TypeVar("T")

Predicate = Callable[[BaseException], bool]
Sleep = Callable[[float], Awaitable[None]]


def is_gateway_timeout(exc: BaseException) -> bool:
    """True si la excepcion es un HTTP 504."""
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 504


def is_transient_transport_error(exc: BaseException) -> bool:
    """
    True para errores de red/timeout y 5xx.

    httpx.TransportError cubre ConnectError, ReadError (conexion reseteada)
    y TimeoutException. asyncio.TimeoutError viene de la cancelacion por
    timeout duro (asyncio.wait_for).
    """
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def is_rest_retryable(exc: BaseException) -> bool:
    """REST: red/timeout y 504. Cualquier otro status HTTP falla inmediato."""
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    return is_gateway_timeout(exc)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Politica de reintentos reutilizable (tenacity por debajo).

    - max_attempts: intentos totales (no reintentos)
    - base_delay_s: espera base; la espera tras el intento n es base * 2**n
    - retry_on: predicado de excepciones reintentables
    - slow_retry_on: predicado de excepciones con espera multiplicada
    - sleep: inyectable para tests
    """

    max_attempts: int = 3
    base_delay_s: float = 1.0
    retry_on: Predicate = is_transient_transport_error
    slow_retry_on: Optional[Predicate] = None
    slow_multiplier: float = 2.0
    sleep: Sleep = field(default=asyncio.sleep, compare=False)

    def wait_seconds(self, attempt: int, exc: Optional[BaseException]) -> float:
        """Espera antes de reintentar, dado el numero de intento que fallo (1-based)."""
        wait = self.base_delay_s * (2 ** attempt)
        if exc is not None and self.slow_retry_on is not None and self.slow_retry_on(exc):
            wait *= self.slow_multiplier
        return wait

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        return self.wait_seconds(retry_state.attempt_number, exc)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Intento {retry_state.attempt_number}/{self.max_attempts} fallo ({exc!r}), "
            f"reintentando en {wait:.1f}s..."
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(self.retry_on),
            before_sleep=self._log_retry,
            sleep=self.sleep,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Ejecuta `fn(*args, **kwargs)` aplicando la politica."""
        return await self._retrying()(fn, *args, **kwargs)
