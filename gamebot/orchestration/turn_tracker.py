# ABOUTME: Turn rotation over a dynamic, insertion-ordered roster of participants.
# ABOUTME: Keeps the turn index valid across joins and leaves; removing the turn holder passes the turn on.

from collections.abc import Iterable, Iterator


def next_index(current_index: int, roster_size: int) -> int:
    """
    Compute the next turn position.

    Wraps to 0 when `current_index` is at (or past) the last position and
    always yields 0 for an empty roster.
    """
    if roster_size <= 0 or current_index >= roster_size - 1:
        return 0
    return current_index + 1


class TurnTracker:
    """
    Roster plus the index of the participant whose action is expected.

    Invariant: 0 <= index < max(1, len(roster)).
    """

    def __init__(self) -> None:
        self._order: list[str] = []
        self._index = 0

    @property
    def roster(self) -> tuple[str, ...]:
        return tuple(self._order)

    @property
    def index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._order

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._order))

    def reset(self, participant_ids: Iterable[str]) -> None:
        """Replace the roster (duplicates dropped, order kept) and rewind the turn"""
        self._order = list(dict.fromkeys(participant_ids))
        self._index = 0

    def clear(self) -> None:
        self._order = []
        self._index = 0

    def add(self, participant_id: str) -> bool:
        """Append a participant; returns False when already present"""
        if participant_id in self._order:
            return False
        self._order.append(participant_id)
        return True

    def remove(self, participant_id: str) -> bool:
        """
        Remove a participant, keeping the turn pointed at the right player.

        If the removed participant held the turn, the turn passes to the
        participant that followed them (one rotation step). Otherwise the
        current holder keeps the turn.

        Returns:
            False when the participant was not in the roster
        """
        if participant_id not in self._order:
            return False

        position = self._order.index(participant_id)
        held_turn = position == self._index
        successor = self._order[next_index(self._index, len(self._order))] if held_turn else None

        self._order.pop(position)

        if not self._order:
            self._index = 0
        elif held_turn:
            self._index = self._order.index(successor) if successor in self._order else 0
        elif position < self._index:
            self._index -= 1
        return True

    def current(self) -> str | None:
        """Participant holding the turn, None for an empty roster"""
        if not self._order:
            return None
        return self._order[self._index]

    def advance(self) -> str | None:
        """Consume one rotation step and return the new turn holder"""
        self._index = next_index(self._index, len(self._order))
        return self.current()
