"""
Room lifecycle: membership, voting phase and the vote tally.

Each operation validates first and writes second, inside the room's
lock, and queues its broadcast before the lock is released so every
connection sees a room's events in the order they were applied.
"""
import logging
import time
import uuid
from typing import Optional, Tuple

from .dispatch import Broadcaster
from .errors import NameTaken, RoomFull, UserNotFound, ValidationError
from .state import Participant, clean_name, compute_statistics, normalize_vote
from .store import RoomStore
from .utils import generate_participant_id, pick_avatar
from .visibility import room_view, visible_vote

logger = logging.getLogger("poker")

DEFAULT_CAPACITY = 10


class RoomService:
    """Operations clients can run against rooms"""

    def __init__(
        self,
        store: RoomStore,
        broadcaster: Broadcaster,
        *,
        capacity: int = DEFAULT_CAPACITY,
        presence=None,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.capacity = capacity
        # set by PresenceManager so reconnects and leaves cancel pending removals
        self.presence = presence

    # ============================================================
    # ROOMS
    # ============================================================

    def create_room(self, name) -> dict:
        room = self.store.create(name)
        logger.info("🎪 Room created: %s (%s)", room.name, room.code)
        return room_view(room)

    def snapshot(self, code, viewer_id: Optional[str] = None) -> dict:
        with self.store.locked(code) as room:
            return room_view(room, viewer_id)

    # ============================================================
    # MEMBERSHIP
    # ============================================================

    def join(
        self,
        code,
        name,
        *,
        spectator: bool = False,
        participant_id: Optional[str] = None,
    ) -> Tuple[dict, dict, bool]:
        """
        Add a participant to a room.

        Presenting the id of someone already in the room resumes that
        seat instead. Resuming does not mark them connected; only an open
        socket does. Returns ``(participant, room, reconnected)``.
        """
        with self.store.locked(code) as room:
            existing = room.find(participant_id)
            if existing is not None:
                room.touch()
                logger.info("♻️ %s rejoined %s", existing.name, room.code)
                return existing.to_dict(), room_view(room, existing.id), True

            name = clean_name(name)
            if not name:
                raise ValidationError("Valid user name is required")
            if len(room.participants) >= self.capacity:
                raise RoomFull(room.code, self.capacity)
            if room.find_by_name(name) is not None:
                raise NameTaken(name)

            participant = Participant(
                id=generate_participant_id(),
                name=name,
                avatar=pick_avatar(room.used_emojis()),
                spectator=bool(spectator),
            )
            room.add_participant(participant)
            logger.info("✅ %s joined %s (%s)", name, room.name, room.code)

            self.publish_room_event(room, "user-joined", participant, exclude=participant.id)
            return participant.to_dict(), room_view(room, participant.id), False

    def leave(self, code, participant_id: str) -> None:
        with self.store.locked(code) as room:
            participant = room.find(participant_id)
            if participant is None:
                raise UserNotFound(participant_id)
            self.evict(room, participant)
        if self.presence is not None:
            self.presence.cancel(room.code, participant_id)

    def mark_connected(self, room, participant: Participant) -> None:
        """Flag a participant reachable again; caller holds the room lock"""
        was_connected = participant.connected
        participant.connected = True
        participant.epoch += 1
        room.touch()
        if self.presence is not None:
            self.presence.cancel(room.code, participant.id)
        if not was_connected:
            self.publish_room_event(room, "user-joined", participant, exclude=participant.id)

    def evict(self, room, participant: Participant) -> None:
        """Remove a participant and their ballot; caller holds the room lock"""
        room.remove_participant(participant.id)
        logger.info("👋 %s left %s", participant.name, room.code)
        self.publish_room_event(room, "user-left", participant)

    # ============================================================
    # VOTING
    # ============================================================

    def cast_vote(self, code, participant_id: str, value) -> None:
        with self.store.locked(code) as room:
            voter = room.find(participant_id)
            if voter is None:
                raise UserNotFound(participant_id)
            if voter.spectator:
                raise ValidationError("Spectators cannot vote")
            vote = normalize_vote(value)

            room.set_ballot(voter.id, vote)
            logger.debug("🗳️ %s voted in %s", voter.name, room.code)

            user = voter.to_dict()
            self.broadcaster.publish(room.code, lambda viewer: {
                "type": "vote-cast",
                "user": user,
                "vote": visible_vote(room, voter.id, vote, viewer),
                "room": room_view(room, viewer),
            })

    def reveal(self, code) -> dict:
        with self.store.locked(code) as room:
            room.reveal()
            stats = compute_statistics(room.ballots)
            logger.info(
                "🃏 Votes revealed in %s: %s votes, avg %s",
                room.code, stats["total_votes"], stats["average"],
            )
            self.broadcaster.publish(room.code, lambda viewer: {
                "type": "votes-revealed",
                "room": room_view(room, viewer),
                "stats": stats,
            })
            return stats

    def reset(self, code) -> None:
        with self.store.locked(code) as room:
            room.reset()
            logger.info("🔄 Voting reset in %s", room.code)
            self.broadcaster.publish(room.code, lambda viewer: {
                "type": "voting-reset",
                "room": room_view(room, viewer),
            })

    # ============================================================
    # SIGNALS
    # ============================================================

    def throw_emoji(self, code, from_id: str, to_id: str, emoji) -> dict:
        """Relay an emoji thrown from one participant at another"""
        emoji = _require_emoji(emoji)
        with self.store.locked(code) as room:
            if room.find(from_id) is None:
                raise UserNotFound(from_id, "From user not found")
            target = room.find(to_id)
            if target is None:
                raise UserNotFound(to_id, "To user not found")

            flying = {
                "id": uuid.uuid4().hex,
                "emoji": emoji,
                "from_id": from_id,
                "to_user": {
                    "id": target.id,
                    "name": target.name,
                    "avatar": dict(target.avatar),
                },
                "timestamp": time.time(),
            }
            self.broadcaster.publish(room.code, lambda viewer: {
                "type": "emoji-flying",
                "flying_emoji": flying,
            })
            return flying

    def self_emoji(self, code, participant_id: str, emoji) -> None:
        emoji = _require_emoji(emoji)
        with self.store.locked(code) as room:
            if room.find(participant_id) is None:
                raise UserNotFound(participant_id)
            event = {
                "type": "self-emoji",
                "user_id": participant_id,
                "emoji": emoji,
                "timestamp": time.time(),
            }
            self.broadcaster.publish(room.code, lambda viewer: event)

    # ============================================================
    # INTERNALS
    # ============================================================

    def publish_room_event(self, room, event_type: str, participant: Participant, exclude=None):
        user = participant.to_dict()
        self.broadcaster.publish(room.code, lambda viewer: {
            "type": event_type,
            "user": user,
            "room": room_view(room, viewer),
        }, exclude=exclude)


def _require_emoji(emoji) -> str:
    if not isinstance(emoji, str) or not emoji.strip():
        raise ValidationError("Emoji is required")
    return emoji.strip()
