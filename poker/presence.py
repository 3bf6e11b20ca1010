"""
Connection liveness and the reconnect grace period.

A participant whose last connection drops is only flagged as
disconnected. Their seat and ballot survive for ``grace_seconds`` so a
page reload or a network blip does not cost them anything; if nobody
reconnects by then they are removed.

Every disconnect/reconnect bumps the participant's epoch. A pending
removal remembers the epoch it was scheduled under and re-checks it
when it fires, so a removal scheduled before a later reconnect can
never act on the newer state even if cancelling it raced.
"""
import asyncio
import logging
from typing import Dict, Tuple

from .dispatch import Connection
from .errors import RoomNotFound, UserNotFound
from .rooms import RoomService
from .utils import normalize_room_code
from .visibility import room_view

logger = logging.getLogger("poker")

GRACE_SECONDS = 10.0

Key = Tuple[str, str]


class PresenceManager:
    def __init__(self, service: RoomService, grace_seconds: float = GRACE_SECONDS) -> None:
        self.service = service
        self.store = service.store
        self.broadcaster = service.broadcaster
        self.grace_seconds = grace_seconds
        self._pending: Dict[Key, asyncio.Task] = {}
        service.presence = self

    def attach(self, conn: Connection, code, participant_id) -> dict:
        """
        Bind a connection to the participant it announced.

        Announcing a participant who is already in the room is a
        reconnection: their seat and ballot are kept and any pending
        removal is called off. Returns the room as that participant sees it.
        """
        previous = None
        if conn.room_code is not None:
            previous = (conn.room_code, conn.participant_id)

        with self.store.locked(code) as room:
            participant = room.find(participant_id)
            if participant is None:
                raise UserNotFound(participant_id)
            self.broadcaster.associate(conn, room.code, participant.id)
            was_connected = participant.connected
            self.service.mark_connected(room, participant)
            if not was_connected:
                logger.info("🔌 %s reconnected to %s", participant.name, room.code)
            view = room_view(room, participant.id)
            self.broadcaster.send(conn, {"type": "joined", "room": view})

        # a connection belongs to one room at a time
        if previous is not None and previous != (room.code, participant.id):
            self._lost(*previous)
        return view

    def detach(self, conn: Connection) -> None:
        """Handle a closed connection"""
        association = self.broadcaster.close(conn)
        if association is not None:
            self._lost(*association)

    def _lost(self, code: str, participant_id: str) -> None:
        try:
            with self.store.locked(code) as room:
                participant = room.find(participant_id)
                if participant is None:
                    return
                # another tab is still open
                if self.broadcaster.live_count(room.code, participant_id):
                    return
                participant.connected = False
                participant.epoch += 1
                self._schedule(room.code, participant_id, participant.epoch)
                logger.info("📴 %s disconnected from %s", participant.name, room.code)
                self.service.publish_room_event(room, "user-disconnected", participant)
        except RoomNotFound:
            return

    def cancel(self, code, participant_id: str) -> bool:
        task = self._pending.pop((normalize_room_code(code), participant_id), None)
        if task is None:
            return False
        task.cancel()
        return True

    async def shutdown(self) -> None:
        tasks = list(self._pending.values())
        self._pending.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _schedule(self, code: str, participant_id: str, epoch: int) -> None:
        key = (code, participant_id)
        previous = self._pending.pop(key, None)
        if previous is not None:
            previous.cancel()
        task = asyncio.create_task(self._expire(code, participant_id, epoch))
        self._pending[key] = task
        task.add_done_callback(lambda t: self._forget(key, t))

    def _forget(self, key: Key, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    async def _expire(self, code: str, participant_id: str, epoch: int) -> None:
        await asyncio.sleep(self.grace_seconds)
        try:
            with self.store.locked(code) as room:
                participant = room.find(participant_id)
                if participant is None or participant.connected or participant.epoch != epoch:
                    return
                logger.info("⌛ Grace period over for %s in %s", participant.name, room.code)
                self.service.evict(room, participant)
        except RoomNotFound:
            logger.debug(f"Room {code} vanished before removing {participant_id}")
