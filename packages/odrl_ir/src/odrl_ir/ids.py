from __future__ import annotations

import hashlib


def stable_id(*parts: str, prefix: str) -> str:
    """Short sha256-derived id, e.g. `rule_<16 hex>` for rules without a uid."""
    joined = "\n".join(parts)
    digest = hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}_{digest}"


def stable_rule_id(*, policy_uid: str | None, slot: str, index: int) -> str:
    return stable_id(policy_uid or "-", slot, str(index), prefix="rule")
