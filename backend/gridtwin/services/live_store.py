"""Holds the most recent ERCOT pull and turns it into simulation inputs."""

import asyncio
import logging
from datetime import datetime, timezone

from gridtwin.schemas.live import BasicSnapshot, LiveBundle, LiveInputs
from gridtwin.schemas.simulation import SimulationResult
from gridtwin.services.ercot_client import ErcotClient
from gridtwin.services.live_adapter import build_seed_inputs, to_live_inputs

logger = logging.getLogger(__name__)


class LiveDataStore:
    def __init__(self, client: ErcotClient | None = None):
        self.client = client or ErcotClient()
        self.bundle: LiveBundle | None = None
        self.basic: BasicSnapshot | None = None
        self.refreshed_at: datetime | None = None

    async def refresh(self) -> LiveBundle:
        bundle, basic = await asyncio.gather(
            self.client.fetch_live_bundle(),
            self.client.fetch_basic_snapshot(),
        )
        self.bundle = bundle
        self.basic = basic
        self.refreshed_at = datetime.now(timezone.utc)
        logger.info(
            "Live data refreshed (bundle ok=%s, basic ok=%s, %d errors)",
            bundle.ok, basic.ok, len(bundle.errors),
        )
        return bundle

    def live_inputs(self, synthetic: SimulationResult) -> LiveInputs | None:
        """Curves for live mode, or None to stay synthetic.

        The full bundle is preferred; a successful basic snapshot is the
        fallback seed.
        """
        if self.bundle is not None:
            inputs = to_live_inputs(self.bundle, synthetic)
            if inputs is not None:
                return inputs
        if self.basic is not None and self.basic.ok:
            return build_seed_inputs(self.basic, synthetic)
        return None
