from chat_relay.registry import Connection, ConnectionRegistry, Message
from chat_relay.relay import FALLBACK_TEXT, FanOutRelay

__version__ = "0.1.0"
