"""Operator abort flag.

Set by ``abort``, cleared only by ``reset``.  Executors poll it between
languages; nothing is interrupted mid-call.
"""

from __future__ import annotations

from fanout.core.state import StateStore

ABORT_KEY = "abort"


class AbortFlag:
    """Global persisted boolean."""

    def __init__(self, state: StateStore) -> None:
        self._state = state

    def set(self) -> None:
        self._state.set(ABORT_KEY, True)

    def clear(self) -> None:
        self._state.delete(ABORT_KEY)

    def is_set(self) -> bool:
        return bool(self._state.get(ABORT_KEY, False))
