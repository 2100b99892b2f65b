"""
Service Context

Bundles the per-request collaborators every repository needs: the
database session, the change feed and the settings. Repositories receive
it explicitly instead of reaching for module-level clients, which keeps
them usable from routes, Celery tasks, the CLI and tests alike.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gestro.core.config import Settings, get_settings
from gestro.services.realtime import BaseChangeFeed, ChangeEvent, ChangeType

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    session: AsyncSession
    feed: Optional[BaseChangeFeed] = None
    settings: Settings = field(default_factory=get_settings)

    async def publish(
        self,
        table: str,
        event_type: ChangeType,
        new: dict,
        old: Optional[dict] = None,
    ) -> None:
        """Publish a committed change; silently skipped without a feed."""
        if self.feed is None:
            return
        await self.feed.publish(ChangeEvent(table=table, event_type=event_type, new=new, old=old))
