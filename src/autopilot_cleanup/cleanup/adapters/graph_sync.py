"""Graph adapter for the Autopilot sync trigger."""

import logging

from ...api.autopilot import AutopilotRegistry
from ...api.exceptions import RateLimitError
from ..domain.entities import SyncOutcome
from ..domain.ports import ISyncService

logger = logging.getLogger(__name__)


class GraphSyncService(ISyncService):
    """Triggers the Autopilot sync; a 429 answer is not an error."""

    def __init__(self, registry: AutopilotRegistry):
        self.registry = registry

    async def trigger_sync(self) -> SyncOutcome:
        try:
            await self.registry.sync()
        except RateLimitError:
            logger.info("Autopilot sync was requested too recently; continuing without it")
            return SyncOutcome.RATE_LIMITED
        logger.info("Autopilot sync triggered")
        return SyncOutcome.TRIGGERED
