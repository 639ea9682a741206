"""
Workflows module - Polling loop orchestration.
"""
from workflows.poller import SourcePoller, SourceState
from workflows.orchestrator import PollingOrchestrator, create_pollers_from_config

__all__ = [
    "SourcePoller",
    "SourceState",
    "PollingOrchestrator",
    "create_pollers_from_config",
]
