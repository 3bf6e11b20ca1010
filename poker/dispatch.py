"""
Fan-out of room events to live WebSocket connections.

Every connection gets its own outbound queue drained by a writer task.
``publish`` renders and enqueues synchronously, so calling it from inside
a room's critical section keeps each connection's view of that room in
commit order even though the socket writes happen later.
"""
import asyncio
import json
import logging
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

logger = logging.getLogger("poker")

Render = Callable[[Optional[str]], Optional[dict]]

_CLOSE = object()


class Connection:
    """One client socket and the room/participant it announced"""

    def __init__(self, ws) -> None:
        self.ws = ws
        self.room_code: Optional[str] = None
        self.participant_id: Optional[str] = None
        self.queue: asyncio.Queue = asyncio.Queue()
        self.writer: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self.writer is None or self.writer.done()

    def __repr__(self) -> str:
        return f"<Connection room={self.room_code} participant={self.participant_id}>"


class Broadcaster:
    def __init__(self) -> None:
        self._rooms: Dict[str, List[Connection]] = {}
        self._open: Set[Connection] = set()

    def open(self, ws) -> Connection:
        conn = Connection(ws)
        conn.writer = asyncio.create_task(self._pump(conn))
        self._open.add(conn)
        return conn

    def associate(self, conn: Connection, room_code: str, participant_id: str) -> None:
        """Bind a connection to a room, leaving any room it was in before"""
        self._detach(conn)
        conn.room_code = room_code
        conn.participant_id = participant_id
        self._rooms.setdefault(room_code, []).append(conn)

    def close(self, conn: Connection) -> Optional[Tuple[str, str]]:
        """Forget a connection; returns the (room, participant) it represented"""
        association = None
        if conn.room_code is not None:
            association = (conn.room_code, conn.participant_id)
        self._detach(conn)
        self._open.discard(conn)
        if conn.writer is not None and not conn.writer.done():
            conn.queue.put_nowait(_CLOSE)
        return association

    def connections(self, room_code: str) -> List[Connection]:
        return list(self._rooms.get(room_code, ()))

    def live_count(self, room_code: str, participant_id: str) -> int:
        return sum(
            1 for conn in self._rooms.get(room_code, ())
            if conn.participant_id == participant_id and not conn.closed
        )

    def send(self, conn: Connection, payload: Union[dict, str]) -> None:
        """Queue a message for one connection, behind anything already queued"""
        if conn.closed:
            return
        if not isinstance(payload, str):
            payload = json.dumps(payload)
        conn.queue.put_nowait(payload)

    def publish(self, room_code: str, render: Render, exclude: Optional[str] = None) -> int:
        """
        Queue ``render(participant_id)`` for every live connection in a room.

        ``exclude`` skips the connections of one participant; a render
        returning ``None`` skips that recipient. Returns how many messages
        were queued.
        """
        queued = 0
        for conn in self._rooms.get(room_code, ()):
            if conn.closed or (exclude is not None and conn.participant_id == exclude):
                continue
            payload = render(conn.participant_id)
            if payload is None:
                continue
            conn.queue.put_nowait(json.dumps(payload))
            queued += 1
        return queued

    async def drain(self) -> None:
        """Wait until every queued message has been handed to its socket"""
        for conn in list(self._open):
            if not conn.closed:
                await conn.queue.join()

    async def shutdown(self) -> None:
        writers = []
        for conn in list(self._open):
            self.close(conn)
            if conn.writer is not None:
                conn.writer.cancel()
                writers.append(conn.writer)
        self._rooms.clear()
        await asyncio.gather(*writers, return_exceptions=True)

    def _detach(self, conn: Connection) -> None:
        if conn.room_code is None:
            return
        conns = self._rooms.get(conn.room_code)
        if conns is not None:
            if conn in conns:
                conns.remove(conn)
            if not conns:
                del self._rooms[conn.room_code]

    async def _pump(self, conn: Connection) -> None:
        try:
            while True:
                message = await conn.queue.get()
                try:
                    if message is _CLOSE:
                        return
                    await conn.ws.send_str(message)
                finally:
                    conn.queue.task_done()
        except Exception as e:
            logger.debug(f"Failed to send to WebSocket {conn!r}: {e}")
            self._detach(conn)
        finally:
            # nothing will be sent any more; release anyone waiting in drain()
            while not conn.queue.empty():
                conn.queue.get_nowait()
                conn.queue.task_done()
