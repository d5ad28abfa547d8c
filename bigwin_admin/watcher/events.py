"""
Change events emitted by the watched tables and the rules deciding which
dashboard views they invalidate.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from bigwin_admin.core.database import WATCHED_TABLES


@dataclass
class ChangeEvent:
    """A committed insert, update or delete on a watched table."""
    collection: str
    operation: str
    document_key: Optional[str] = None
    updated_fields: Optional[List[str]] = None
    full_document: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @classmethod
    def from_notification(cls, payload: str) -> "ChangeEvent":
        """Build an event from a pg_notify JSON payload."""
        data = json.loads(payload)
        return cls(
            collection=data["collection"],
            operation=str(data["operation"]).lower(),
            document_key=str(data["document_key"]) if data.get("document_key") is not None else None,
            updated_fields=data.get("updated_fields"),
        )


# Fields whose change can alter a dashboard view. None means any field.
WATCHED_FIELDS: Dict[str, Optional[FrozenSet[str]]] = {
    "wallets": frozenset({"total_balance_usd", "last_updated"}),
    "wallet_transactions": None,
    "game_profiles": None,
}

# Views recomputed and pushed when a table changes
BROADCAST_ROUTES: Dict[str, Tuple[str, ...]] = {
    "wallets": ("pendingWithdrawals",),
    "wallet_transactions": ("pendingWithdrawals",),
    "game_profiles": ("gameProfiles", "gameStatistics"),
}


def is_relevant_change(event: ChangeEvent) -> bool:
    """
    Decide whether an event should trigger a recompute and broadcast.

    Deliberately broad: inserts and deletes always count, and an update
    counts unless it is known to touch only unwatched fields.
    """
    if event.collection not in WATCHED_TABLES:
        return False

    if event.operation in ("insert", "delete"):
        return True

    if event.operation != "update":
        return False

    watched = WATCHED_FIELDS.get(event.collection)
    if watched is None or not event.updated_fields:
        return True

    return bool(watched.intersection(event.updated_fields))


def views_for_event(event: ChangeEvent) -> Tuple[str, ...]:
    """Views to broadcast for a relevant event."""
    if not is_relevant_change(event):
        return ()
    return BROADCAST_ROUTES.get(event.collection, ())
