"""
Process-wide in-memory room registry.

One store is built per application and handed to everything that needs
rooms. Each room has its own lock; the store lock only guards the
registry dict, so rooms never wait on each other.
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from .errors import RoomNotFound, ValidationError
from .state import Room
from .utils import generate_room_code, normalize_room_code

logger = logging.getLogger("poker")

CODE_ATTEMPTS = 10


class RoomStore:
    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._rooms)

    def create(self, name) -> Room:
        """Register a new room under a fresh code"""
        name = name.strip() if isinstance(name, str) else ""
        if not name:
            raise ValidationError("Team name is required")

        with self._lock:
            for _ in range(CODE_ATTEMPTS):
                code = generate_room_code()
                if code not in self._rooms:
                    break
                logger.warning("Room code collision on %s, retrying", code)
            else:
                raise RuntimeError("Failed to generate unique room code")

            room = Room(code=code, name=name)
            self._rooms[code] = room
            self._locks[code] = threading.RLock()
        return room

    def get(self, code) -> Optional[Room]:
        return self._rooms.get(normalize_room_code(code))

    @contextmanager
    def locked(self, code) -> Iterator[Room]:
        """Hold a room's lock for one critical section."""
        code = normalize_room_code(code)
        with self._lock:
            lock = self._locks.get(code)
        if lock is None:
            raise RoomNotFound(code)
        with lock:
            # the room may have been discarded while we waited
            room = self._rooms.get(code)
            if room is None:
                raise RoomNotFound(code)
            yield room

    def discard(self, code) -> Optional[Room]:
        code = normalize_room_code(code)
        with self._lock:
            self._locks.pop(code, None)
            return self._rooms.pop(code, None)

    def prune_idle(self, max_idle: float, now: Optional[float] = None) -> List[str]:
        """Drop rooms nobody is in that have been idle for ``max_idle`` seconds"""
        now = time.time() if now is None else now
        pruned = []
        with self._lock:
            for code, room in list(self._rooms.items()):
                if room.participants or now - room.last_activity <= max_idle:
                    continue
                lock = self._locks[code]
                # a room that is mid-mutation is not idle
                if not lock.acquire(blocking=False):
                    continue
                try:
                    del self._rooms[code]
                    del self._locks[code]
                finally:
                    lock.release()
                pruned.append(code)
        return pruned
