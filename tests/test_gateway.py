"""
tests/test_gateway.py

Parallel evidence collection: timeouts, failures, stamping and ordering.
"""

import asyncio

from credence.core.config import EngineConfig
from credence.providers.gateway import EvidenceCollector, ProviderGateway

from conftest import answer


class FakeProvider:
    def __init__(self, provider_id, rank, answers=(), delay=0.0, error=None):
        self.provider_id = provider_id
        self.rank = rank
        self.answers = list(answers)
        self.delay = delay
        self.error = error
        self.cancelled = False

    async def fetch_answers(self, question, timeout):
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error:
            raise self.error
        return self.answers


def collect(collector, question="Is X true?"):
    return asyncio.run(collector.collect(question))


class TestEvidenceCollector:

    def test_fake_provider_satisfies_protocol(self):
        assert isinstance(FakeProvider("p", 0), ProviderGateway)

    def test_answers_stamped_and_rank_ordered(self):
        providers = [
            FakeProvider("slow-second", 2, [answer("https://b.com/1", provider_id="")]),
            FakeProvider("first", 0, [answer("https://a.com/1", provider_id="spoofed", rank=9)]),
        ]
        answers = collect(EvidenceCollector(providers, per_provider_timeout=1, overall_timeout=2))
        assert [(a.provider_id, a.rank) for a in answers] == [("first", 0), ("slow-second", 2)], (
            "Collector must stamp its own provider id and rank, not trust the provider"
        )

    def test_timed_out_provider_is_absent(self):
        providers = [
            FakeProvider("fast", 0, [answer("https://a.com/1")]),
            FakeProvider("stuck", 1, [answer("https://b.com/1")], delay=5),
        ]
        answers = collect(EvidenceCollector(providers, per_provider_timeout=0.05, overall_timeout=1))
        assert [a.provider_id for a in answers] == ["fast"]
        assert providers[1].cancelled

    def test_failing_provider_is_absent(self):
        providers = [
            FakeProvider("ok", 0, [answer("https://a.com/1")]),
            FakeProvider("broken", 1, error=RuntimeError("upstream 500")),
        ]
        answers = collect(EvidenceCollector(providers, per_provider_timeout=1, overall_timeout=1))
        assert [a.provider_id for a in answers] == ["ok"]

    def test_overall_deadline_cancels_stragglers(self):
        providers = [
            FakeProvider("fast", 0, [answer("https://a.com/1")]),
            FakeProvider("slow", 1, [answer("https://b.com/1")], delay=5),
        ]
        answers = collect(EvidenceCollector(providers, per_provider_timeout=10, overall_timeout=0.05))
        assert [a.provider_id for a in answers] == ["fast"]
        assert providers[1].cancelled

    def test_providers_run_concurrently(self):
        providers = [
            FakeProvider(f"p{i}", i, [answer(f"https://site{i}.com/x")], delay=0.2)
            for i in range(5)
        ]
        loop_time = {}

        async def run():
            loop = asyncio.get_running_loop()
            start = loop.time()
            result = await EvidenceCollector(providers, 1, 2).collect("q")
            loop_time["elapsed"] = loop.time() - start
            return result

        answers = asyncio.run(run())
        assert len(answers) == 5
        assert loop_time["elapsed"] < 0.9, "Five 0.2s providers must not run back to back"

    def test_no_providers(self):
        assert collect(EvidenceCollector([])) == []

    def test_timeouts_default_from_config(self):
        collector = EvidenceCollector([], config=EngineConfig(evaluation_timeout=7, max_evaluation_time=20))
        assert collector.per_provider_timeout == 7
        assert collector.overall_timeout == 20
