from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MAX_FALLBACK_DEPTH = 16
DEFAULT_MAX_CONSTRAINT_DEPTH = 32
DEFAULT_DEREFERENCE_TIMEOUT_MS = 3000


def _env_int(
    name: str,
    default: int,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise RuntimeError(f"{name} must be an integer") from exc
    if minimum is not None and value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise RuntimeError(f"{name} must be <= {maximum}")
    return value


@dataclass(frozen=True)
class EngineConfig:
    max_fallback_depth: int = DEFAULT_MAX_FALLBACK_DEPTH
    max_constraint_depth: int = DEFAULT_MAX_CONSTRAINT_DEPTH
    dereference_timeout_ms: int = DEFAULT_DEREFERENCE_TIMEOUT_MS

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            max_fallback_depth=_env_int(
                "ODRL_MAX_FALLBACK_DEPTH",
                DEFAULT_MAX_FALLBACK_DEPTH,
                minimum=0,
                maximum=1024,
            ),
            max_constraint_depth=_env_int(
                "ODRL_MAX_CONSTRAINT_DEPTH",
                DEFAULT_MAX_CONSTRAINT_DEPTH,
                minimum=1,
                maximum=1024,
            ),
            dereference_timeout_ms=_env_int(
                "ODRL_DEREFERENCE_TIMEOUT_MS",
                DEFAULT_DEREFERENCE_TIMEOUT_MS,
                minimum=1,
            ),
        )
