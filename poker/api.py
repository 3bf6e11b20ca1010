"""
HTTP and WebSocket handlers for the planning poker rooms
"""
import json
import logging
import time
from datetime import datetime, timezone

from aiohttp import web

from .dispatch import Broadcaster
from .errors import PokerError, ValidationError
from .presence import PresenceManager
from .rooms import RoomService
from .store import RoomStore

logger = logging.getLogger("poker")

STORE = web.AppKey("store", RoomStore)
BROADCASTER = web.AppKey("broadcaster", Broadcaster)
ROOMS = web.AppKey("rooms", RoomService)
PRESENCE = web.AppKey("presence", PresenceManager)
STARTED_AT = web.AppKey("started_at", float)

# ============================================================
# ERRORS
# ============================================================

@web.middleware
async def error_middleware(request, handler):
    """Turn room errors into ``{"ok": False, "error": ...}`` responses"""
    try:
        return await handler(request)
    except PokerError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e}")
        return web.json_response({"ok": False, "error": str(e)}, status=e.status)


async def read_json(request: web.Request) -> dict:
    if not request.body_exists:
        return {}
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON") from None
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data: dict, *names: str) -> None:
    missing = [name for name in names if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

# ============================================================
# WEBSOCKET FOR REAL-TIME ROOM EVENTS
# ============================================================

async def ws_room(request):
    """
    WebSocket endpoint for room events.

    The client announces itself with
    ``{"type": "join-room", "room_code": ..., "participant_id": ...}``
    and from then on receives every event of that room.
    """
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    broadcaster = request.app[BROADCASTER]
    presence = request.app[PRESENCE]
    rooms = request.app[ROOMS]
    conn = broadcaster.open(ws)
    logger.info("📡 WebSocket client connected")

    try:
        async for msg in ws:
            if msg.type == web.WSMsgType.TEXT:
                # Handle ping/pong for keepalive
                if msg.data == "ping":
                    broadcaster.send(conn, "pong")
                    continue
                try:
                    data = json.loads(msg.data)
                    if not isinstance(data, dict):
                        raise ValidationError("Messages must be JSON objects")
                    action = data.get("type")
                    if action == "join-room":
                        require_fields(data, "room_code", "participant_id")
                        presence.attach(conn, data["room_code"], data["participant_id"])
                    elif action == "sync":
                        if conn.room_code is None:
                            raise ValidationError("Join a room first")
                        view = rooms.snapshot(conn.room_code, conn.participant_id)
                        broadcaster.send(conn, {"type": "room", "room": view})
                    else:
                        raise ValidationError(f"Unknown message type: {action!r}")
                except json.JSONDecodeError:
                    broadcaster.send(conn, {"type": "error", "message": "Invalid JSON"})
                except PokerError as e:
                    broadcaster.send(conn, {"type": "error", "message": str(e)})
            elif msg.type == web.WSMsgType.ERROR:
                logger.debug(f"WebSocket closed with exception {ws.exception()}")
    except Exception as e:
        logger.debug(f"WebSocket error: {e}")
    finally:
        presence.detach(conn)
        logger.info("📡 WebSocket client disconnected")

    return ws

# ============================================================
# ROOM MANAGEMENT
# ============================================================

async def api_room_create(request: web.Request) -> web.Response:
    """Create a new room"""
    data = await read_json(request)
    room = request.app[ROOMS].create_room(data.get("name"))
    return web.json_response({
        "ok": True,
        "room_code": room["code"],
        "room": room
    })


async def api_room_get(request: web.Request) -> web.Response:
    """Current room view, masked for the ``viewer`` query parameter"""
    room = request.app[ROOMS].snapshot(
        request.match_info["room_code"],
        request.query.get("viewer")
    )
    return web.json_response({"ok": True, "room": room})


async def api_room_join(request: web.Request) -> web.Response:
    """Join a room, or resume a seat when ``participant_id`` is known"""
    data = await read_json(request)
    spectator = data.get("spectator")
    if spectator is None:
        spectator = False
    elif not isinstance(spectator, bool):
        raise ValidationError("spectator must be true or false")
    participant, room, reconnected = request.app[ROOMS].join(
        request.match_info["room_code"],
        data.get("name"),
        spectator=spectator,
        participant_id=data.get("participant_id")
    )
    return web.json_response({
        "ok": True,
        "participant": participant,
        "room": room,
        "reconnected": reconnected
    })


async def api_room_leave(request: web.Request) -> web.Response:
    data = await read_json(request)
    require_fields(data, "participant_id")
    request.app[ROOMS].leave(request.match_info["room_code"], data["participant_id"])
    return web.json_response({"ok": True})

# ============================================================
# VOTING
# ============================================================

async def api_vote(request: web.Request) -> web.Response:
    """Cast, change or withdraw (``"REMOVE_VOTE"``) a vote"""
    data = await read_json(request)
    require_fields(data, "participant_id", "vote")
    request.app[ROOMS].cast_vote(
        request.match_info["room_code"],
        data["participant_id"],
        data["vote"]
    )
    return web.json_response({"ok": True})


async def api_reveal(request: web.Request) -> web.Response:
    stats = request.app[ROOMS].reveal(request.match_info["room_code"])
    return web.json_response({"ok": True, "stats": stats})


async def api_reset(request: web.Request) -> web.Response:
    request.app[ROOMS].reset(request.match_info["room_code"])
    return web.json_response({"ok": True})

# ============================================================
# EMOJI SIGNALS
# ============================================================

async def api_throw_emoji(request: web.Request) -> web.Response:
    data = await read_json(request)
    require_fields(data, "from_id", "to_id", "emoji")
    flying = request.app[ROOMS].throw_emoji(
        request.match_info["room_code"],
        data["from_id"],
        data["to_id"],
        data["emoji"]
    )
    return web.json_response({"ok": True, "flying_emoji": flying})


async def api_self_emoji(request: web.Request) -> web.Response:
    data = await read_json(request)
    require_fields(data, "participant_id", "emoji")
    request.app[ROOMS].self_emoji(
        request.match_info["room_code"],
        data["participant_id"],
        data["emoji"]
    )
    return web.json_response({"ok": True})

# ============================================================
# HEALTH
# ============================================================

async def api_health(request: web.Request) -> web.Response:
    return web.json_response({
        "status": "healthy",
        "uptime": round(time.monotonic() - request.app[STARTED_AT], 3),
        "rooms": len(request.app[STORE]),
        "timestamp": datetime.now(timezone.utc).isoformat()
    })
