# Overview: Explicit account/actor context threaded through every core call.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import Unauthorized


@dataclass(frozen=True)
class Scope:
    """
    The acting business account (tenant) and, when known, the acting user.

    account_id is the opaque identifier supplied by the identity provider.
    Every ledger, approval and reporting query is filtered by it.
    """
    account_id: str
    actor: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.account_id, str) or not self.account_id.strip():
            raise Unauthorized("account scope is required")

    def owns(self, record) -> bool:
        return getattr(record, "account_id", None) == self.account_id


def require_scope(scope) -> Scope:
    """Guard used at service entry points; rejects a missing scope."""
    if not isinstance(scope, Scope):
        raise Unauthorized("account scope is required")
    return scope
