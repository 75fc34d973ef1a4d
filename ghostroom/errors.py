"""Hub error taxonomy.

Every failure that is reported back to a client is a :class:`HubError`. The
``code`` is stable and machine readable; ``text`` is what a user sees. Errors
are raised before any room state is written, so a caller never has to roll
anything back.
"""

from __future__ import annotations


class HubError(Exception):
    code = "ERROR"
    default_text = "request failed"

    def __init__(self, text: str | None = None) -> None:
        self.text = text or self.default_text
        super().__init__(self.text)


class CapacityExceeded(HubError):
    code = "ROOM_LIMIT_REACHED"
    default_text = "THE SERVER IS AT CAPACITY. TRY AGAIN LATER."


class InvalidKeyLength(HubError):
    code = "INVALID_KEY_LENGTH"

    def __init__(self, min_len: int, max_len: int) -> None:
        self.min_len = int(min_len)
        self.max_len = int(max_len)
        super().__init__(
            f"ENCRYPTION KEY MUST BE BETWEEN {self.min_len} AND {self.max_len} CHARACTERS."
        )


class RoomNotFound(HubError):
    code = "ROOM_NOT_FOUND"
    default_text = "ROOM NOT FOUND."


class RoomDestroyed(RoomNotFound):
    code = "ROOM_DESTROYED"
    default_text = "THIS ROOM HAS ALREADY BEEN TERMINATED."


class WrongSecret(HubError):
    code = "WRONG_SECRET"
    default_text = "ACCESS DENIED: Invalid Encryption Key."


class NameTaken(HubError):
    code = "NAME_TAKEN"
    default_text = "CODENAME ALREADY IN USE."


class NotHost(HubError):
    code = "NOT_HOST"
    default_text = "only the host can do that"


class TargetNotInRoom(HubError):
    code = "TARGET_NOT_IN_ROOM"
    default_text = "user is not in this room"


class NoSuchRequest(HubError):
    code = "NO_SUCH_REQUEST"
    default_text = "no pending join request for that user"


class NotAMember(HubError):
    code = "NOT_A_MEMBER"
    default_text = "you are not a member of this room"


class AlreadyInRoom(HubError):
    code = "ALREADY_IN_ROOM"
    default_text = "leave your current room first"


class InvalidName(HubError):
    code = "INVALID_NAME"
    default_text = "invalid codename"


class PollClosed(HubError):
    code = "POLL_CLOSED"
    default_text = "this poll has closed"


class BadRequest(HubError):
    code = "BAD_REQUEST"
    default_text = "malformed request"


class RateLimited(HubError):
    code = "RATE_LIMITED"
    default_text = "rate limited"


class NotAuthor(HubError):
    code = "NOT_AUTHOR"
    default_text = "you can only change your own messages"
