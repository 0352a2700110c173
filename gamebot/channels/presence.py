# ABOUTME: Phoenix presence state tracking for a room channel.
# ABOUTME: Applies presence_state snapshots and presence_diff deltas, reporting joins and leaves per session id.

import copy
from collections.abc import Callable
from typing import Any

# (session_id, current presence or None, presence that joined/left)
PresenceCallback = Callable[[str, dict | None, dict], None]


def _refs(presence: dict) -> set[Any]:
    return {meta.get("phx_ref") for meta in presence.get("metas", [])}


class Presence:
    """
    Tracks who is present on a channel.

    State maps session id -> {"metas": [...]}, the most recent meta last.
    `on_join` receives the presence as it was before the join (None for a
    brand new session); `on_leave` receives what remains after the leave.
    """

    def __init__(
        self,
        on_join: PresenceCallback | None = None,
        on_leave: PresenceCallback | None = None,
    ):
        self.state: dict[str, dict] = {}
        self.on_join = on_join
        self.on_leave = on_leave

    def sync_state(self, new_state: dict[str, dict]) -> None:
        """Reconcile a full presence snapshot into joins and leaves"""
        joins: dict[str, dict] = {}
        leaves: dict[str, dict] = {}

        for key, presence in self.state.items():
            if key not in new_state:
                leaves[key] = presence

        for key, new_presence in new_state.items():
            current = self.state.get(key)
            if current is None:
                joins[key] = new_presence
                continue
            new_refs = _refs(new_presence)
            cur_refs = _refs(current)
            joined = [m for m in new_presence.get("metas", []) if m.get("phx_ref") not in cur_refs]
            left = [m for m in current.get("metas", []) if m.get("phx_ref") not in new_refs]
            if joined:
                joins[key] = {"metas": joined}
            if left:
                leaves[key] = {"metas": left}

        self.sync_diff({"joins": joins, "leaves": leaves})

    def sync_diff(self, diff: dict[str, dict]) -> None:
        """Apply a presence_diff payload: {"joins": {...}, "leaves": {...}}"""
        for key, new_presence in (diff.get("joins") or {}).items():
            current = self.state.get(key)
            merged = copy.deepcopy(new_presence)
            if current is not None:
                joined_refs = _refs(merged)
                kept = [m for m in current.get("metas", []) if m.get("phx_ref") not in joined_refs]
                merged["metas"] = kept + merged.get("metas", [])
            self.state[key] = merged
            if self.on_join:
                self.on_join(key, current, new_presence)

        for key, left_presence in (diff.get("leaves") or {}).items():
            current = self.state.get(key)
            if current is None:
                continue
            removed = _refs(left_presence)
            current["metas"] = [m for m in current.get("metas", []) if m.get("phx_ref") not in removed]
            if self.on_leave:
                self.on_leave(key, current, left_presence)
            if not current["metas"]:
                del self.state[key]

    def most_recent(self, session_id: str) -> dict | None:
        """Most recent meta for a session id, or None when not present"""
        presence = self.state.get(session_id)
        if not presence or not presence.get("metas"):
            return None
        return presence["metas"][-1]
