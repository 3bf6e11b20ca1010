"""
Errors raised by room operations.

Every check runs before a room is written, so raising one of these
never leaves a room half-updated. The HTTP layer turns them into
``{"ok": False, "error": ...}`` responses using ``status``.
"""


class PokerError(Exception):
    status = 500


class ValidationError(PokerError):
    """Missing, empty or malformed input"""
    status = 400


class NotFound(PokerError):
    status = 404


class RoomNotFound(NotFound):
    def __init__(self, code: str):
        super().__init__("Room not found")
        self.code = code


class UserNotFound(NotFound):
    def __init__(self, participant_id: str, message: str = "User not found"):
        super().__init__(message)
        self.participant_id = participant_id


class Conflict(PokerError):
    status = 409


class NameTaken(Conflict):
    def __init__(self, name: str):
        super().__init__(
            f'The name "{name}" is already taken. Please choose a different name.'
        )
        self.name = name


class CapacityExceeded(PokerError):
    status = 429


class RoomFull(CapacityExceeded):
    def __init__(self, code: str, capacity: int):
        super().__init__("Room is full")
        self.code = code
        self.capacity = capacity
