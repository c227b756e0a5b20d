"""TCP server side of dirscope: the listener and per-connection sessions."""

from dirscope.server.listener import Listener, ListenerError
from dirscope.server.session import SessionController, SessionError

__all__ = ["Listener", "ListenerError", "SessionController", "SessionError"]
