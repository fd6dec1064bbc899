# Signaling protocol constants (JSON keys and message types)

# Message keys
K_TYPE = "type"
K_ROOM = "room"

# Message types handled by the relay. Every other type is opaque and fanned out.
T_JOIN = "JOIN"
T_JOINED = "JOINED"
T_PEER_JOINED = "PEER_JOINED"

# Defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_HEALTH_TEXT = "sigrelay up"

MAX_MSG_BYTES = 64 * 1024  # hard cap per message
MAX_FRAME_BYTES = 1024 * 1024  # transport cap; larger frames close the connection

RATE_LIMIT_MSGS = 200
RATE_LIMIT_WINDOW_S = 5.0

PING_INTERVAL_S = 30.0

SEND_QUEUE_MAX = 256
