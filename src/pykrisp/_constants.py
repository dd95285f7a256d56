"""Internal constants shared across the library."""

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORTS: tuple[int, ...] = (50190, 50191, 50192)
CLIENT_VERSION = "1.0.0"

# ------------------------------------------------------------------
# Timing (seconds)
# ------------------------------------------------------------------

DEFAULT_CONNECTION_TIMEOUT = 5.0
DEFAULT_REQUEST_TIMEOUT = 5.0

RECONNECT_BASE_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0
RECONNECT_BACKOFF_MULTIPLIER = 1.5

RECOVERY_POLL_ATTEMPTS = 10
RECOVERY_POLL_INTERVAL = 0.1

# ------------------------------------------------------------------
# Socket.IO disconnect reasons
# ------------------------------------------------------------------
# python-socketio reports the engine.io reason strings; the JS client
# prefixes them with "io ". Both spellings are accepted.

SERVER_DISCONNECT_REASONS: frozenset[str] = frozenset({"server disconnect", "io server disconnect"})
CLIENT_DISCONNECT_REASONS: frozenset[str] = frozenset({"client disconnect", "io client disconnect"})

# python-socketio raises ConnectionError with this message when the
# transport connected but the server rejected the namespace handshake.
NAMESPACE_REJECTED_MARKER = "namespaces failed to connect"
