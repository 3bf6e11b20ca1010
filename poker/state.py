"""
In-memory room state: rooms, participants and ballots
"""
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from .errors import ValidationError

VoteValue = Union[int, str]

VOTE_SCALE = (0, 1, 2, 3, 5, 8, 13, 21, 34, 55, 89)
UNKNOWN_VOTE = "?"
WITHDRAW_VOTE = "REMOVE_VOTE"

NAME_MAX_LEN = 20


class Phase(str, Enum):
    COLLECTING = "collecting"
    REVEALED = "revealed"


def normalize_vote(value) -> Optional[VoteValue]:
    """
    Map a wire value onto a ballot value.

    Returns ``None`` for the withdrawal signal; ``"?"`` stays a real
    ballot so it is counted on reveal.
    """
    if value == WITHDRAW_VOTE:
        return None
    if value == UNKNOWN_VOTE:
        return UNKNOWN_VOTE
    if isinstance(value, bool):
        raise ValidationError(f"Invalid vote: {value!r}")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError(f"Invalid vote: {value!r}") from None
    elif isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value in VOTE_SCALE:
        return value
    raise ValidationError(f"Invalid vote: {value!r}")


def clean_name(name) -> str:
    if not isinstance(name, str):
        return ""
    return name.strip()[:NAME_MAX_LEN].strip()


@dataclass
class Participant:
    id: str
    name: str
    avatar: Dict[str, str]
    connected: bool = True
    spectator: bool = False
    # bumped on every disconnect/reconnect so stale removals can tell
    epoch: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": dict(self.avatar),
            "connected": self.connected,
            "spectator": self.spectator,
        }


@dataclass
class Room:
    code: str
    name: str
    participants: List[Participant] = field(default_factory=list)
    phase: Phase = Phase.COLLECTING
    ballots: Dict[str, VoteValue] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    def touch(self) -> None:
        self.last_activity = time.time()

    def find(self, participant_id: Optional[str]) -> Optional[Participant]:
        if not participant_id:
            return None
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def find_by_name(self, name: str) -> Optional[Participant]:
        wanted = name.casefold()
        for participant in self.participants:
            if participant.name.casefold() == wanted:
                return participant
        return None

    def used_emojis(self) -> List[str]:
        return [p.avatar["emoji"] for p in self.participants]

    def add_participant(self, participant: Participant) -> None:
        self.participants.append(participant)
        self.touch()

    def remove_participant(self, participant_id: str) -> Optional[Participant]:
        participant = self.find(participant_id)
        if participant is None:
            return None
        self.participants.remove(participant)
        self.ballots.pop(participant_id, None)
        self.touch()
        return participant

    def set_ballot(self, participant_id: str, vote: Optional[VoteValue]) -> None:
        if vote is None:
            self.ballots.pop(participant_id, None)
        else:
            self.ballots[participant_id] = vote
        self.touch()

    def reveal(self) -> None:
        self.phase = Phase.REVEALED
        self.touch()

    def reset(self) -> None:
        self.ballots.clear()
        self.phase = Phase.COLLECTING
        self.touch()


def compute_statistics(ballots: Dict[str, VoteValue]) -> dict:
    """
    Tally a round of ballots.

    ``"?"`` ballots count towards ``total_votes``, ``distribution`` and
    ``agreement`` but not towards the average.
    """
    values = list(ballots.values())
    total = len(values)
    numeric = [v for v in values if isinstance(v, int)]

    distribution: Dict[str, int] = {}
    for value in values:
        key = str(value)
        distribution[key] = distribution.get(key, 0) + 1

    average = _round_half_up(sum(numeric) / len(numeric), "0.1") if numeric else 0
    agreement = _round_half_up(max(distribution.values()) / total, "0.01") if total else 0

    return {
        "total_votes": total,
        "average": average,
        "distribution": distribution,
        "agreement": agreement,
    }


def _round_half_up(value: float, places: str) -> float:
    # ties go up: 1.25 -> 1.3, 0.125 -> 0.13
    return float(Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP))
