"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from core.entities import CandidateItem
from services.ledger import Ledger


class SourceFetcher(ABC):
    """
    Base interface for all polled sources.
    """

    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    @property
    @abstractmethod
    def identifier(self) -> str:
        """Human readable identifier used in logs."""
        raise NotImplementedError

    @abstractmethod
    async def fetch(self, cutoff: datetime) -> List[CandidateItem]:
        """
        Fetch items published after cutoff that are not in the ledger.
        Network and parse failures raise FetchError, ledger failures
        propagate as LedgerError.
        """
        raise NotImplementedError
