"""In-process hub that records emitted events instead of touching a channel layer."""
from __future__ import annotations

from typing import Optional

from .hub import Hub


class RecordingHub(Hub):
    def __init__(self):
        self.events: list[tuple[str, str, Optional[dict]]] = []

    def publish(self, event, target, payload=None, exclude=None):
        self.events.append((event, target, dict(payload) if isinstance(payload, dict) else payload))

    async def apublish(self, event, target, payload=None, exclude=None):
        self.publish(event, target, payload, exclude)

    def named(self, event: str) -> list[tuple[str, Optional[dict]]]:
        return [(target, payload) for name, target, payload in self.events if name == event]

    def targets(self, event: str) -> list[str]:
        return [target for target, _ in self.named(event)]

    def clear(self) -> None:
        self.events.clear()
