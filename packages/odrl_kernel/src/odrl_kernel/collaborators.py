from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from odrl_ir import Request

from .config import DEFAULT_DEREFERENCE_TIMEOUT_MS, EngineConfig

logger = logging.getLogger(__name__)


class Unresolved(Enum):
    UNKNOWN = "unknown"
    UNAVAILABLE = "unavailable"


UNKNOWN = Unresolved.UNKNOWN
UNAVAILABLE = Unresolved.UNAVAILABLE


class ContextSupplier(Protocol):
    def lookup(self, left_operand: str, request: Request) -> Any:
        """Return the current value of `left_operand`, or UNKNOWN."""
        ...


class OperandResolver(Protocol):
    def resolve(self, iri: str) -> Any:
        """Return the value behind a rightOperandReference, or UNAVAILABLE."""
        ...


@dataclass(frozen=True)
class RequestContextSupplier:
    def lookup(self, left_operand: str, request: Request) -> Any:
        if left_operand in request.operands:
            return request.operands[left_operand]
        if left_operand == "dateTime" and request.timestamp is not None:
            return request.timestamp
        return UNKNOWN


@dataclass(frozen=True)
class NullOperandResolver:
    def resolve(self, iri: str) -> Any:
        return UNAVAILABLE


@dataclass(frozen=True)
class MappingOperandResolver:
    values: Mapping[str, Any] = field(default_factory=dict)

    def resolve(self, iri: str) -> Any:
        return self.values.get(iri, UNAVAILABLE)


async def _await_with_timeout(awaitable: Awaitable[Any], timeout_secs: float) -> Any:
    return await asyncio.wait_for(awaitable, timeout_secs)


def _call_resolver(
    resolver: Callable[[str], Any],
    iri: str,
    timeout_secs: float,
) -> Any:
    result = resolver(iri)
    if inspect.isawaitable(result):
        return asyncio.run(_await_with_timeout(result, timeout_secs))
    return result


@dataclass
class BoundedOperandResolver:
    """Runs a sync or async dereference callable off-thread with a deadline.

    Timeouts and resolver failures come back as UNAVAILABLE so the constraint
    evaluates Indeterminate instead of blocking. Nothing is retried here.

    The pool is shared and a sync resolver cannot be interrupted: a call that
    never returns holds its worker for good. Once every worker is held, later
    dereferences wait in the queue and come back UNAVAILABLE at the deadline.
    Resolvers should carry their own I/O timeouts.
    """

    resolver: Callable[[str], Any]
    timeout_ms: int = DEFAULT_DEREFERENCE_TIMEOUT_MS
    max_workers: int = 4
    _executor: ThreadPoolExecutor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be a positive integer")
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="odrl-dereference",
        )

    @classmethod
    def from_config(
        cls,
        resolver: Callable[[str], Any],
        config: EngineConfig | None = None,
    ) -> "BoundedOperandResolver":
        config = config or EngineConfig.from_env()
        return cls(resolver, timeout_ms=config.dereference_timeout_ms)

    def resolve(self, iri: str) -> Any:
        timeout_secs = self.timeout_ms / 1000
        future = self._executor.submit(_call_resolver, self.resolver, iri, timeout_secs)
        try:
            return future.result(timeout=timeout_secs)
        except (FuturesTimeoutError, asyncio.TimeoutError):
            future.cancel()
            logger.warning("dereference of %s timed out after %sms", iri, self.timeout_ms)
            return UNAVAILABLE
        except Exception:
            logger.warning("dereference of %s failed", iri, exc_info=True)
            return UNAVAILABLE

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "BoundedOperandResolver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
