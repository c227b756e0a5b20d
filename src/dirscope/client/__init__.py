"""Client library for talking to a dirscope server.

Public API:
    RemoteClient -- Async connection with login and command helpers
    AuthenticationError -- Login refused by the server
"""

from dirscope.client.remote import AuthenticationError, RemoteClient, parse_search, parse_traversal

__all__ = ["AuthenticationError", "RemoteClient", "parse_search", "parse_traversal"]
