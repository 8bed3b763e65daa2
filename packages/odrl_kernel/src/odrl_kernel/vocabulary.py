"""ODRL 2.2 core action hierarchy (`odrl:includedIn`)."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

_USE_ACTIONS = (
    "acceptTracking",
    "aggregate",
    "annotate",
    "anonymize",
    "archive",
    "attribute",
    "compensate",
    "concurrentUse",
    "delete",
    "derive",
    "digitize",
    "display",
    "distribute",
    "ensureExclusivity",
    "execute",
    "extract",
    "grantUse",
    "include",
    "index",
    "inform",
    "install",
    "modify",
    "move",
    "nextPolicy",
    "obtainConsent",
    "play",
    "present",
    "print",
    "read",
    "reproduce",
    "reviewPolicy",
    "stream",
    "synchronize",
    "textToSpeech",
    "transform",
    "translate",
    "uninstall",
    "watermark",
)
_TRANSFER_ACTIONS = ("give", "sell")

ODRL_ACTION_PARENTS: Mapping[str, str] = MappingProxyType(
    {
        **{action: "use" for action in _USE_ACTIONS},
        **{action: "transfer" for action in _TRANSFER_ACTIONS},
    }
)


def action_includes(
    granted: str,
    requested: str,
    parents: Mapping[str, str] = ODRL_ACTION_PARENTS,
) -> bool:
    """True when `requested` is `granted` or is transitively included in it."""
    current: str | None = requested
    seen: set[str] = set()
    while current is not None and current not in seen:
        if current == granted:
            return True
        seen.add(current)
        current = parents.get(current)
    return False
