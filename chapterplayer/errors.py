"""Exceptions raised by the chapter player to the hosting application."""
from __future__ import annotations
from typing import List, Optional


class ChapterError(Exception):
    """Base class for chapter player failures."""
    pass


class ChapterLoadError(ChapterError, ValueError):
    """Chapter document missing, unparseable or structurally invalid."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors: List[str] = list(errors or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.errors:
            return base
        return base + "\n" + "\n".join(f"  - {e}" for e in self.errors)


class MissingNodeError(ChapterError, KeyError):
    """A transition pointed at a node id that the chapter does not define."""

    def __init__(self, node_id: str, previous_node_id: Optional[str] = None):
        super().__init__(node_id)
        self.node_id = node_id
        self.previous_node_id = previous_node_id

    def __str__(self) -> str:
        if self.previous_node_id:
            return f"Node not found: {self.node_id} (cursor restored to {self.previous_node_id})"
        return f"Node not found: {self.node_id}"
