"""
Runs one independent polling loop per configured source.
"""
import asyncio
import logging
from typing import List, Optional

from core.errors import PublishError
from delivery.base import Publisher
from ingestion.rss import RSSFetcher
from ingestion.source_factory import create_fetchers
from processing.assembler import PostAssembler
from services.config import Config, get_enabled_sources
from services.enrichment import Enricher, PageMetadataEnricher
from services.ledger import Ledger
from workflows.poller import SourcePoller

logger = logging.getLogger(__name__)


class PollingOrchestrator:
    """
    Supervises the source loops.

    A loop that fails is logged with its source and left stopped while the
    others keep running. With restart_failed_sources, a loop ended by a
    publish failure is restarted after one polling interval instead.
    """

    def __init__(
        self,
        pollers: List[SourcePoller],
        stop_event: Optional[asyncio.Event] = None,
        restart_failed_sources: bool = False,
    ):
        self.pollers = pollers
        self.stop_event = stop_event or asyncio.Event()
        self.restart_failed_sources = restart_failed_sources
        for poller in pollers:
            poller.stop_event = self.stop_event

    def stop(self) -> None:
        logger.info("Stop requested, finishing current cycles")
        self.stop_event.set()

    async def _supervise(self, poller: SourcePoller) -> None:
        while True:
            try:
                await poller.run_forever()
                return
            except PublishError as e:
                logger.exception(f"Publishing failed for {poller.name}: {e}", extra={"source": poller.name})
                if not self.restart_failed_sources or self.stop_event.is_set():
                    raise
            await poller.sleep()
            if self.stop_event.is_set():
                return
            logger.info(f"Restarting polling loop for {poller.name}", extra={"source": poller.name})

    async def run(self) -> List[BaseException]:
        """
        Run every loop until it stops or fails.
        Returns the errors that ended loops.
        """
        logger.info(f"Starting {len(self.pollers)} polling loops")
        results = await asyncio.gather(
            *(self._supervise(poller) for poller in self.pollers),
            return_exceptions=True,
        )

        errors = []
        for poller, result in zip(self.pollers, results):
            if isinstance(result, BaseException):
                logger.error(f"Polling loop for {poller.name} ended with {result!r}", extra={"source": poller.name})
                errors.append(result)
        return errors


def create_pollers_from_config(
    config: Config,
    ledger: Ledger,
    publisher: Publisher,
    enricher: Optional[Enricher] = None,
) -> List[SourcePoller]:
    """
    Build one poller per enabled source (per feed for RSS sources).

    Raises:
        ValueError: If a source is misconfigured
    """
    enricher = enricher or PageMetadataEnricher()
    pollers = []

    for source_config in get_enabled_sources(config):
        for fetcher in create_fetchers(source_config, ledger):
            # Cover images of API sources are already resolved
            assembler = PostAssembler(enricher if isinstance(fetcher, RSSFetcher) else None)
            pollers.append(
                SourcePoller(
                    fetcher=fetcher,
                    assembler=assembler,
                    publisher=publisher,
                    ledger=ledger,
                    languages=source_config.languages,
                    interval_seconds=source_config.interval_seconds,
                    backdate_hours=source_config.backdate_hours,
                    retention_cap=config.RETENTION_CAP,
                )
            )
            logger.info(f"Created {source_config.type} poller: {fetcher.identifier}")

    return pollers
