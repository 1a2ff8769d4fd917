"""External chat-session client.

- SessionClient: protocol the lifecycle manager drives
- BridgeSessionClient: WebSocket bridge implementation
- CredentialStore: persisted login state
"""

from chatrelay.services.session_client.bridge import BridgeSessionClient
from chatrelay.services.session_client.credentials import CredentialStore
from chatrelay.services.session_client.exceptions import (
    BridgeNotConnectedError,
    BridgeRequestError,
    BridgeTimeoutError,
    SessionClientError,
)
from chatrelay.services.session_client.protocol import (
    ChatInfo,
    InboundMessage,
    MediaKind,
    SessionClient,
)

__all__ = [
    # Clients
    "BridgeSessionClient",
    "CredentialStore",
    # Protocol
    "SessionClient",
    # Data types
    "ChatInfo",
    "InboundMessage",
    "MediaKind",
    # Exceptions
    "SessionClientError",
    "BridgeNotConnectedError",
    "BridgeRequestError",
    "BridgeTimeoutError",
]
