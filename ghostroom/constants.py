# Ghostroom protocol constants (numeric keys and event types)

GHR_VERSION = 1

# Envelope keys
K_V = 0
K_T = 1
K_ID = 2
K_TS = 3
K_SRC = 4
K_ROOM = 5
K_BODY = 6

# Inbound event types (client -> hub)
T_CREATE_ROOM = 10
T_JOIN_ROOM = 11
T_DECIDE_JOIN = 12
T_KICK_USER = 13
T_LEAVE_ROOM = 14
T_CLOSE_ROOM = 15

T_SEND_MESSAGE = 20
T_EDIT_MESSAGE = 21
T_DELETE_MESSAGE = 22
T_POLL_VOTE = 23
T_TYPING_STATUS = 24

# Outbound event types (hub -> client)
T_ROOM_CREATED = 30
T_JOINED_ROOM = 31
T_JOIN_PENDING = 32
T_JOIN_REQUEST = 33
T_JOIN_WITHDRAWN = 34
T_JOIN_RESULT = 35
T_UPDATE_USERS = 36
T_KICKED = 37
T_ROOM_CLOSED = 38

T_RECEIVE_MESSAGE = 40
T_NOTICE = 41
T_MESSAGE_DELETED = 42
T_MESSAGE_UPDATED = 43
T_POLL_VOTE_UPDATE = 44
T_USER_TYPING = 45

T_ERROR = 50

# create_room body keys
B_CREATE_NICK = 0
B_CREATE_SECRET = 1
B_CREATE_NAME = 2
B_CREATE_APPROVAL = 3

# join_room body keys (room id travels in K_ROOM)
B_JOIN_NICK = 0
B_JOIN_SECRET = 1

# decide_join body keys
B_DECIDE_TARGET = 0
B_DECIDE_APPROVE = 1
B_DECIDE_REASON = 2

# kick_user body keys
B_KICK_TARGET = 0

# send_message / receive_message body keys
B_MSG_ID = 0
B_MSG_CIPHERTEXT = 1
B_MSG_SELF_DESTRUCT_MS = 2
B_MSG_REPLY_TO = 3
B_MSG_POLL = 4
B_MSG_SENDER = 5

# Poll keys (nested under B_MSG_POLL)
B_POLL_OPTIONS = 0
B_POLL_MULTIPLE = 1
B_POLL_EXPIRES_AT = 2

B_OPTION_ID = 0
B_OPTION_CIPHERTEXT = 1

# edit_message / message_updated body keys
B_EDIT_ID = 0
B_EDIT_CIPHERTEXT = 1

# delete_message / message_deleted body keys
B_DELETE_ID = 0

# poll_vote / poll_vote_update body keys
B_VOTE_MSG = 0
B_VOTE_OPTION = 1
B_VOTE_ACTION = 2
B_VOTE_VOTER = 3

VOTE_ADD = "add"
VOTE_REMOVE = "remove"

# typing_status / user_typing body keys
B_TYPING = 0
B_TYPING_NICK = 1

# Room snapshot keys (room_created / joined_room)
B_ROOM_ID = 0
B_ROOM_CREATED_AT = 1
B_ROOM_ROSTER = 2
B_ROOM_NAME = 3
B_ROOM_IS_HOST = 4
B_ROOM_APPROVAL = 5

# Roster entry keys
B_MEMBER_ID = 0
B_MEMBER_NICK = 1
B_MEMBER_HOST = 2

# join_request / join_request_withdrawn body keys
B_REQ_ID = 0
B_REQ_NICK = 1
B_REQ_TS = 2

# join_request_result body keys
B_RESULT_APPROVED = 0
B_RESULT_REASON = 1

# room_closed body keys
B_CLOSED_REASON = 0

CLOSED_HOST_LEFT = "host_left"
CLOSED_HOST_CLOSED = "host_closed"
CLOSED_EXPIRED = "expired"

# error body keys
B_ERROR_CODE = 0
B_ERROR_TEXT = 1

# Destroyed room ids are remembered this long so that a stale invite can be
# told apart from a mistyped room id.
DESTROYED_ROOM_RETENTION_S = 7 * 24 * 3600

DEFAULT_REJECT_REASON = "The host declined your request."

NICK_MAX_CHARS = 32
MESSAGE_ID_MAX_LEN = 64

# Upper bounds for client supplied millisecond values.
SELF_DESTRUCT_MAX_MS = 30 * 24 * 3600 * 1000
POLL_EXPIRES_MAX_MS = 253_402_300_799_999  # 9999-12-31T23:59:59.999Z
