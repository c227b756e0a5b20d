"""dirscope -- Remote directory browsing, search, and file inspection.

This package implements a TCP session server that lets authenticated
clients walk, search, and read the server's filesystem over a single
persistent connection using a small text command protocol, together
with the matching async client library.
"""

__version__ = "0.1.0"
