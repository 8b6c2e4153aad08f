"""
Provider gateway interface and parallel evidence collection.

EvidenceCollector.collect() asks every provider at once:
  - each provider is bounded by per_provider_timeout
  - the whole fan-out is bounded by overall_timeout; stragglers are cancelled
  - a provider that times out or raises is treated as absent (logged)
  - answers are stamped with the provider's id and rank, returned in rank order
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from credence.core.config import EngineConfig
from credence.core.models import ProviderAnswer


logger = logging.getLogger(__name__)


@runtime_checkable
class ProviderGateway(Protocol):
    provider_id: str
    rank:        int

    async def fetch_answers(self, question: str, timeout: float) -> Sequence[ProviderAnswer]:
        ...


class EvidenceCollector:
    def __init__(
        self,
        providers:            Sequence[ProviderGateway],
        per_provider_timeout: Optional[float] = None,
        overall_timeout:      Optional[float] = None,
        config:               Optional[EngineConfig] = None,
    ):
        config = config or EngineConfig()
        self.providers = list(providers)
        self.per_provider_timeout = (
            per_provider_timeout if per_provider_timeout is not None else config.evaluation_timeout
        )
        self.overall_timeout = (
            overall_timeout if overall_timeout is not None else config.max_evaluation_time
        )

    async def _fetch_one(self, provider: ProviderGateway, question: str) -> List[ProviderAnswer]:
        start = time.monotonic()
        try:
            answers = await asyncio.wait_for(
                provider.fetch_answers(question, self.per_provider_timeout),
                timeout=self.per_provider_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Provider %s timed out after %ss", provider.provider_id, self.per_provider_timeout,
            )
            return []
        except Exception:
            logger.exception("Provider %s failed", provider.provider_id)
            return []

        elapsed = time.monotonic() - start
        stamped = [
            replace(a, provider_id=provider.provider_id, rank=provider.rank)
            for a in (answers or [])
            if isinstance(a, ProviderAnswer)
        ]
        logger.info(
            "Provider %s returned %d answers in %.2fs", provider.provider_id, len(stamped), elapsed,
        )
        return stamped

    async def collect(self, question: str) -> List[ProviderAnswer]:
        if not self.providers:
            return []
        logger.info("Collecting evidence from %d providers", len(self.providers))

        tasks = [
            asyncio.ensure_future(self._fetch_one(provider, question))
            for provider in self.providers
        ]
        try:
            done, pending = await asyncio.wait(tasks, timeout=self.overall_timeout)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        for task in pending:
            task.cancel()
        if pending:
            logger.error(
                "%d providers still running at the %ss overall deadline; cancelled",
                len(pending), self.overall_timeout,
            )
            await asyncio.gather(*pending, return_exceptions=True)

        answers: List[ProviderAnswer] = []
        for task in tasks:
            if task in done and not task.cancelled():
                answers.extend(task.result())
        answers.sort(key=lambda a: (a.rank, a.provider_id))
        return answers
