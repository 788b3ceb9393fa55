"""Dependencies a job needs, built explicitly per worker invocation."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crosspost.config import Settings
from crosspost.integrations.registry import AdapterRegistry
from crosspost.queue import JobMessage, submit
from crosspost.utils.helpers import utc_now


@dataclass
class JobContext:
    session_factory: async_sessionmaker[AsyncSession]
    registry: AdapterRegistry
    settings: Settings
    enqueue: Callable[[JobMessage], object] = submit
    clock: Callable[[], datetime] = field(default=utc_now)

    def now(self) -> datetime:
        return self.clock()
