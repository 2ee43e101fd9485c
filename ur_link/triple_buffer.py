"""
Single-writer / single-reader triple buffer.

The writer owns `back` exclusively and the reader owns `front`
exclusively; the `middle` slot changes hands only inside the lock, so the
reader never sees a half-written value and the writer never waits on the
reader for longer than one swap.
"""

import copy
import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class TripleBuffer(Generic[T]):

    def __init__(self, initial: T):
        self._lock = threading.Lock()
        self._updated = False
        self.initialize(initial)

    def initialize(self, value: T):
        """Reset all three slots to independent copies of value."""
        with self._lock:
            self._front = copy.deepcopy(value)
            self._middle = copy.deepcopy(value)
            self._back = copy.deepcopy(value)
            self._updated = False

    @property
    def back(self) -> T:
        """Writer's slot. Fill it completely before calling swap_back()."""
        return self._back

    @back.setter
    def back(self, value: T):
        self._back = value

    @property
    def front(self) -> T:
        """Reader's slot, valid until the reader's next swap_front()."""
        return self._front

    @property
    def updated(self) -> bool:
        return self._updated

    def swap_back(self):
        """Publish the back slot (writer side)."""
        with self._lock:
            self._back, self._middle = self._middle, self._back
            self._updated = True

    def swap_front(self) -> bool:
        """
        Take the most recently published value (reader side).

        Returns:
            True if front now holds a newer value, False if nothing was
            published since the last call
        """
        if not self._updated:
            return False
        with self._lock:
            self._front, self._middle = self._middle, self._front
            self._updated = False
        return True
