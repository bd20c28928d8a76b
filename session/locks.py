import threading
from contextlib import contextmanager


class ConversationLocks:
    """
    One mutex per conversation id. Turns of the same conversation run
    one at a time; different conversations never contend.

    An entry lives only while some thread holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # conversation id -> [lock, holders + waiters]
        self._locks = {}

    def _acquire_entry(self, conversation_id):
        with self._guard:
            entry = self._locks.get(conversation_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[conversation_id] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, conversation_id):
        with self._guard:
            entry = self._locks[conversation_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[conversation_id]

    @contextmanager
    def hold(self, conversation_id):
        lock = self._acquire_entry(conversation_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(conversation_id)

    def __len__(self):
        with self._guard:
            return len(self._locks)
