"""Command executors for dirscope sessions.

Public API:
    DirectoryWalker -- TRAVERSE, and the first phase of SEARCH
    ContentScanner -- Second phase of SEARCH
    FileStreamer -- INSPECT
"""

from dirscope.executors.scanner import ContentScanner
from dirscope.executors.streamer import FileStreamer
from dirscope.executors.walker import DirectoryWalker, WalkError

__all__ = ["ContentScanner", "DirectoryWalker", "FileStreamer", "WalkError"]
