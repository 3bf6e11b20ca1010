#!/usr/bin/env python3
"""
Planning Poker - Entry Point
WebSocket room events + rate limiting + idle room cleanup
"""
import asyncio
import logging
import socket
import time
from collections import defaultdict
from typing import Optional

from aiohttp import web

from poker.api import (
    BROADCASTER, PRESENCE, ROOMS, STARTED_AT, STORE,
    api_health, api_reset, api_reveal, api_room_create, api_room_get,
    api_room_join, api_room_leave, api_self_emoji, api_throw_emoji, api_vote,
    error_middleware, ws_room,
)
from poker.config import Settings, load_settings
from poker.dispatch import Broadcaster
from poker.presence import PresenceManager
from poker.rooms import RoomService
from poker.store import RoomStore

logger = logging.getLogger("poker")

SETTINGS = web.AppKey("settings", Settings)
CLEANUP_TASK = web.AppKey("cleanup_task", asyncio.Task)

UNLIMITED_PATHS = ("/health", "/ws")


def rate_limit_middleware(limit: int):
    """Sliding window rate limiting: ``limit`` requests per minute per IP"""
    store = defaultdict(list)

    @web.middleware
    async def middleware(request, handler):
        if limit <= 0 or request.path in UNLIMITED_PATHS:
            return await handler(request)

        ip = request.remote
        now = time.time()

        # Clean old entries
        store[ip] = [t for t in store[ip] if now - t < 60]

        if len(store[ip]) >= limit:
            logger.warning(f"Rate limit exceeded for {ip}")
            return web.json_response(
                {"ok": False, "error": "Rate limit exceeded"},
                status=429
            )

        store[ip].append(now)
        return await handler(request)

    return middleware


async def cleanup_idle_rooms(app):
    """Background task removing empty rooms nobody has touched in a while"""
    settings = app[SETTINGS]
    while True:
        await asyncio.sleep(settings.cleanup_interval)
        try:
            for code in app[STORE].prune_idle(settings.room_idle_seconds):
                logger.info(f"🧹 Removing idle room: {code}")
        except Exception as e:
            logger.error(f"Cleanup task error: {e}")


async def background_tasks(app):
    app[CLEANUP_TASK] = asyncio.create_task(cleanup_idle_rooms(app))
    yield
    app[CLEANUP_TASK].cancel()
    await asyncio.gather(app[CLEANUP_TASK], return_exceptions=True)
    await app[PRESENCE].shutdown()
    await app[BROADCASTER].shutdown()


def create_app(settings: Optional[Settings] = None) -> web.Application:
    """Create and configure the aiohttp application"""
    settings = settings or load_settings()
    app = web.Application(middlewares=[
        rate_limit_middleware(settings.rate_limit),
        error_middleware,
    ])

    store = RoomStore()
    broadcaster = Broadcaster()
    rooms = RoomService(store, broadcaster, capacity=settings.room_capacity)
    app[SETTINGS] = settings
    app[STORE] = store
    app[BROADCASTER] = broadcaster
    app[ROOMS] = rooms
    app[PRESENCE] = PresenceManager(rooms, grace_seconds=settings.grace_seconds)
    app[STARTED_AT] = time.monotonic()

    # API routes
    app.router.add_post("/api/rooms", api_room_create)
    app.router.add_get("/api/rooms/{room_code}", api_room_get)
    app.router.add_post("/api/rooms/{room_code}/join", api_room_join)
    app.router.add_post("/api/rooms/{room_code}/leave", api_room_leave)
    app.router.add_post("/api/rooms/{room_code}/vote", api_vote)
    app.router.add_post("/api/rooms/{room_code}/reveal", api_reveal)
    app.router.add_post("/api/rooms/{room_code}/reset", api_reset)
    app.router.add_post("/api/rooms/{room_code}/throw-emoji", api_throw_emoji)
    app.router.add_post("/api/rooms/{room_code}/self-emoji", api_self_emoji)
    app.router.add_get("/health", api_health)

    # WebSocket for real-time room events
    app.router.add_get("/ws", ws_room)

    app.cleanup_ctx.append(background_tasks)
    logger.info("🃏 Planning poker server ready • WebSocket enabled")
    return app


def get_local_ip():
    """Get local network IP address"""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "localhost"


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    settings = load_settings()
    app = create_app(settings)
    local_ip = get_local_ip()

    logger.info(f"🚀 Starting server on {settings.host}:{settings.port}")
    logger.info(f"💡 Access at: http://{local_ip}:{settings.port}")

    web.run_app(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
