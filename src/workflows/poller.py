"""
Per-source polling loop: fetch, publish, record, trim, sleep.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from core.entities import CandidateItem
from core.errors import DuplicateKeyError, FetchError, LedgerError
from delivery.base import Publisher
from ingestion.base import SourceFetcher
from processing.assembler import PostAssembler
from services.ledger import Ledger, DEFAULT_RETENTION_CAP

logger = logging.getLogger(__name__)


@dataclass
class SourceState:
    source_identifier: str
    cutoff: datetime
    backdate_window: timedelta

    def advance(self) -> None:
        # Slides with the clock, not with the newest item seen; the ledger absorbs the overlap.
        self.cutoff = datetime.now(timezone.utc) - self.backdate_window


class SourcePoller:
    """
    Owns the polling loop of a single source.

    Fetch failures skip the cycle. Publish and ledger failures are
    propagated and end the loop; a url is recorded only after its
    publish succeeded.
    """

    def __init__(
        self,
        fetcher: SourceFetcher,
        assembler: PostAssembler,
        publisher: Publisher,
        ledger: Ledger,
        languages: List[str],
        interval_seconds: float = 300,
        backdate_hours: float = 3,
        retention_cap: int = DEFAULT_RETENTION_CAP,
        stop_event: Optional[asyncio.Event] = None,
    ):
        self.fetcher = fetcher
        self.assembler = assembler
        self.publisher = publisher
        self.ledger = ledger
        self.languages = languages
        self.interval_seconds = interval_seconds
        self.retention_cap = retention_cap
        self.stop_event = stop_event or asyncio.Event()

        window = timedelta(hours=backdate_hours)
        self.state = SourceState(
            source_identifier=fetcher.identifier,
            cutoff=datetime.now(timezone.utc) - window,
            backdate_window=window,
        )
        logger.debug(
            f"Initialized poller for {self.name} with starting cutoff of {self.state.cutoff}",
            extra={"source": self.name},
        )

    @property
    def name(self) -> str:
        return self.state.source_identifier

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    async def _record(self, url: str) -> None:
        try:
            await self.ledger.record(url)
        except DuplicateKeyError:
            logger.debug(f"{url} was already recorded", extra={"source": self.name, "url": url})

    async def _trim(self) -> None:
        try:
            await self.ledger.trim(self.retention_cap)
        except LedgerError as e:
            logger.warning(f"Failed to remove old stored posts: {e}", extra={"source": self.name})

    async def _publish(self, item: CandidateItem) -> None:
        logger.info(f"Running for post '{item.link}'", extra={"source": self.name, "url": item.link})
        post = await self.assembler.assemble(item, self.languages)
        reference = await self.publisher.publish(post)
        await self._record(item.link)
        logger.info(f"Published {item.link} as {reference.uri}", extra={"source": self.name, "url": item.link})

    async def run_cycle(self) -> int:
        """
        Run one fetch/publish/trim cycle.
        Returns the number of published posts.
        """
        await self.publisher.sync()
        logger.info(f"Checking for unposted entries for {self.name}", extra={"source": self.name})

        try:
            items = await self.fetcher.fetch(self.state.cutoff)
        except FetchError as e:
            logger.error(f"Failed to fetch {self.name}, skipping for this iteration: {e}", extra={"source": self.name})
            return 0
        self.state.advance()

        # Strictly sequential: a url is recorded only after its own publish succeeded
        published = 0
        for item in items:
            await self._publish(item)
            published += 1

        await self._trim()
        return published

    async def sleep(self) -> None:
        """Wait for the polling interval, waking early when a stop is requested."""
        logger.info(
            f"Now waiting for {self.interval_seconds} seconds before re-running {self.name}",
            extra={"source": self.name},
        )
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            pass

    async def run_forever(self) -> None:
        while not self.stopped:
            await self.run_cycle()
            if self.stopped:
                break
            await self.sleep()
        logger.info(f"Stopped polling {self.name}", extra={"source": self.name})
