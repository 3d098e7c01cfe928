"""
kitchen_bridge: protocol core of a personal kitchen assistant.

Connects a conversational model (streaming websocket or stateless REST) to a
local ingredient and recipe store through a fixed set of typed functions.

- schema: the function declarations the model may call
- dispatcher: validates and executes calls against a KitchenStore
- conversation: bounded history for stateless requests
- client: ProtocolClient, one state machine over both transports
- lifecycle: acceptance, per-message and heartbeat timers
- audio_codec: float <-> 16-bit PCM
"""
from .client import ProtocolClient
from .client_events import ClientEvent, ConnectionState, EventType, SessionMode
from .dispatcher import FunctionDispatcher
from .store import InMemoryKitchenStore

__all__ = [
    "ProtocolClient",
    "ClientEvent",
    "ConnectionState",
    "EventType",
    "SessionMode",
    "FunctionDispatcher",
    "InMemoryKitchenStore",
]
