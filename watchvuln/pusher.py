"""Push interfaces and fan-out pushers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from watchvuln.messages import RawMessage


class TextPusher(ABC):
    """Something that can push text and markdown messages."""

    @abstractmethod
    def push_text(self, s: str) -> None:
        """Push a plain text message."""

    @abstractmethod
    def push_markdown(self, title: str, content: str) -> None:
        """Push a markdown message with a title."""


class RawPusher(ABC):
    """Something that can push structured raw messages."""

    @abstractmethod
    def push_raw(self, r: RawMessage) -> None:
        """Push a raw message."""


class MultiTextPusher(TextPusher):
    """Pushes to every given pusher in order, stopping at the first failure."""

    def __init__(self, *pushers: TextPusher):
        self.pushers = list(pushers)

    def push_text(self, s: str) -> None:
        for pusher in self.pushers:
            pusher.push_text(s)

    def push_markdown(self, title: str, content: str) -> None:
        for pusher in self.pushers:
            pusher.push_markdown(title, content)


class MultiRawPusher(RawPusher):
    """Pushes raw messages to every given pusher, stopping at the first failure."""

    def __init__(self, *pushers: RawPusher):
        self.pushers = list(pushers)

    def push_raw(self, r: RawMessage) -> None:
        for pusher in self.pushers:
            pusher.push_raw(r)