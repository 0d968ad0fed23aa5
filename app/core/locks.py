import threading
from contextlib import contextmanager
from typing import Dict, Hashable, List


class KeyedLocks:
    """
    Un lock por clave (p.ej. id de mesa), creado bajo demanda.

    Cada entrada cuenta sus usuarios (dueño más los que esperan) y se borra
    cuando el último la suelta: el registro solo contiene claves en uso.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]
