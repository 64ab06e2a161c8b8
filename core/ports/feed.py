from typing import Protocol

from core.schemas import ChangeEvent


class ChangeFeedPort(Protocol):
    async def publish(self, event: ChangeEvent) -> None: ...
