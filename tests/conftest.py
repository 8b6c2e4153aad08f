"""
tests/conftest.py

Shared fixtures: answer builders, a controllable clock, engines and a
lifecycle wired to a temporary signed registry.
"""

from datetime import datetime, timedelta, timezone

import pytest

from credence.consensus.engine import ConsensusEngine
from credence.core.config import EngineConfig
from credence.core.crypto import Ed25519KeyManager
from credence.core.models import ProviderAnswer, Source
from credence.ledger.chain import LedgerChainClient
from credence.ledger.registry import SettlementRegistry
from credence.lifecycle.machine import IntentLifecycle
from credence.lifecycle.store import IntentStore


T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def answer(
    url: str,
    yes: bool = True,
    confidence: float = 0.9,
    title: str = None,
    provider_id: str = "p1",
    rank: int = 0,
) -> ProviderAnswer:
    """Helper: one sourced provider answer."""
    return ProviderAnswer(
        source=      Source(title=f"Report {url}" if title is None else title, url=url),
        answer=      yes,
        confidence=  confidence,
        provider_id= provider_id,
        rank=        rank,
    )


def panel(confidences, yes: bool = True, domain: str = "example.com"):
    """Helper: one answer per confidence, each from a distinct URL."""
    return [
        answer(f"https://{domain}/article-{i}", yes=yes, confidence=c)
        for i, c in enumerate(confidences)
    ]


class FakeClock:
    """Deterministic clock. Call advance() to move time forward."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return EngineConfig(required_sources=3, confidence_threshold=0.8)


@pytest.fixture
def engine(config):
    return ConsensusEngine(config)


@pytest.fixture
def key():
    """A fresh Ed25519 key manager for each test."""
    return Ed25519KeyManager.generate()


@pytest.fixture
def registry(key, tmp_path):
    return SettlementRegistry(key, registry_dir=str(tmp_path / "registry"))


@pytest.fixture
def lifecycle(config, clock, registry):
    return IntentLifecycle(
        store=        IntentStore(),
        config=       config,
        clock=        clock,
        chain_client= LedgerChainClient(registry),
    )
