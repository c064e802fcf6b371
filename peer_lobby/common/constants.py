"""Shared constants for session identity, channels and networking."""

import string

# Session identity
SESSION_ID_LENGTH = 20
SESSION_ID_ALPHABET = string.ascii_lowercase

# Reset protocol
LEAVE_GRACE_PERIOD = 0.5  # Seconds to let a leave notice flush before closing

# Channels
CHANNEL_OPEN_TIMEOUT = 10.0  # Seconds to wait for a data channel to open
DATA_CHANNEL_LABEL = "session"

# Envelope keys
DISCONNECTION_KEY = "disconnection"
SENDER_KEY = "from"
PAYLOAD_KEY = "payload"

# Network
DEFAULT_DIRECTORY_HOST = "127.0.0.1"
DEFAULT_DIRECTORY_PORT = 9000
DIRECTORY_URL_ENV = "PEER_LOBBY_DIRECTORY"
