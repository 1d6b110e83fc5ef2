from __future__ import annotations

from collections.abc import Iterator


class SubscriberSet:
    """Chat ids that receive whale alerts in private.

    Membership changes are idempotent: ``add`` and ``remove`` report whether
    anything changed instead of raising.
    """

    def __init__(self, initial: list[str] | None = None) -> None:
        self._ids: set[str] = {str(chat_id) for chat_id in initial or []}

    def __contains__(self, chat_id: object) -> bool:
        return str(chat_id) in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    def add(self, chat_id: object) -> bool:
        key = str(chat_id)
        if key in self._ids:
            return False
        self._ids.add(key)
        return True

    def remove(self, chat_id: object) -> bool:
        key = str(chat_id)
        if key not in self._ids:
            return False
        self._ids.discard(key)
        return True
