"""
What each viewer may see of a room.

While votes are being collected a viewer sees its own ballot and only
the fact that others have voted. After the reveal everyone sees
everything.
"""
from typing import Dict, Optional

from .state import Phase, Room, VoteValue, compute_statistics

MASK = "***"


def visible_ballots(room: Room, viewer_id: Optional[str]) -> Dict[str, VoteValue]:
    if room.phase == Phase.REVEALED:
        return dict(room.ballots)
    return {
        pid: (vote if pid == viewer_id else MASK)
        for pid, vote in room.ballots.items()
    }


def visible_vote(room: Room, voter_id: str, vote: Optional[VoteValue], viewer_id: Optional[str]):
    """The value of a just-cast vote as one viewer is allowed to see it"""
    if vote is None or room.phase == Phase.REVEALED or voter_id == viewer_id:
        return vote
    return MASK


def room_view(room: Room, viewer_id: Optional[str] = None) -> dict:
    """Snapshot of a room personalized for ``viewer_id``"""
    view = {
        "code": room.code,
        "name": room.name,
        "participants": [p.to_dict() for p in room.participants],
        "phase": room.phase.value,
        "votes": visible_ballots(room, viewer_id),
        "created_at": room.created_at,
    }
    if room.phase == Phase.REVEALED:
        view["stats"] = compute_statistics(room.ballots)
    return view
