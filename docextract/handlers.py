"""
Content handlers receiving the text produced by parsers.
"""

from abc import ABC, abstractmethod
from typing import List

from .types import WriteLimitReached


class ContentHandler(ABC):
    """
    Receiver of parser output.

    Parsers call ``characters()`` for every piece of text they recognize.
    A handler may raise a ``ContentHandlerError`` to abort the parse.
    """

    def start_document(self) -> None:
        pass

    @abstractmethod
    def characters(self, text: str) -> None:
        raise NotImplementedError

    def end_document(self) -> None:
        pass


class BoundedTextSink(ContentHandler):
    """
    Accumulates text up to ``limit`` characters.

    Once the budget is used up the sink keeps the prefix that fits, flags
    ``limit_reached`` and raises ``WriteLimitReached`` so the parser stops.
    A negative limit disables the bound.
    """

    def __init__(self, limit: int = -1):
        self.limit = limit
        self.limit_reached = False
        self._parts: List[str] = []
        self._written = 0

    @property
    def written(self) -> int:
        return self._written

    def characters(self, text: str) -> None:
        if not text:
            return
        if self.limit_reached:
            raise WriteLimitReached(self.limit)

        if self.limit < 0 or self._written + len(text) <= self.limit:
            self._parts.append(text)
            self._written += len(text)
            return

        remaining = self.limit - self._written
        if remaining > 0:
            self._parts.append(text[:remaining])
            self._written += remaining
        self.limit_reached = True
        raise WriteLimitReached(self.limit)

    def __str__(self) -> str:
        return "".join(self._parts)
