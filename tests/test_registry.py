"""
tests/test_registry.py

Settlement registry and auditor:

  CHAIN / SIGNATURES
    First entry chains to GENESIS_HASH, each next to the previous
    Any tampering is reported by the auditor, never silently accepted

  PERSISTENCE
    State survives reopening; duplicates rejected; corrupt tails warn

  CHAIN CLIENT
    submit_record / query_record over the registry
"""

import json

import pytest

from credence.core.crypto import Ed25519KeyManager
from credence.core.exceptions import ChainSubmissionError, LedgerError, RecordNotFound
from credence.core.models import Evaluation, RefutationChallenge, Settlement, Source, Stakes, Winner
from credence.ledger.audit import audit_file, load_entries
from credence.ledger.chain import ChainClient, LedgerChainClient
from credence.ledger.registry import GENESIS_HASH, RecordKind, RegistryEntry, SettlementRegistry
from credence.settlement.calculator import SettlementCalculator

from conftest import answer


def _evaluation():
    return Evaluation.evaluated(
        "Is X true?",
        [Source("a", "https://reuters.com/a"), Source("b", "https://bbc.com/b")],
        True, 0.9, "median",
    ).with_submission("alice", 50)


def populate(registry):
    """Helper: evaluation → challenge → settlement, as the lifecycle publishes them."""
    evaluation = _evaluation()
    challenge = RefutationChallenge.create(evaluation.hash, "bob", 80, [answer("https://ap.org/c", yes=False)])
    stakes = Stakes(reward=100, evaluator_stake=50, challenger_stake=80)
    settlement = SettlementCalculator().settle(evaluation, challenge, Winner.CHALLENGER, stakes)
    registry.append(RecordKind.EVALUATION, evaluation.to_record(), 50)
    registry.append(RecordKind.CHALLENGE, challenge.to_dict(), 80)
    registry.append(RecordKind.SETTLEMENT, settlement.to_record(), stakes.total)
    return evaluation, challenge, settlement


def rewrite(path, mutate):
    """Helper: apply mutate(list_of_dicts) to a registry file on disk."""
    lines = [json.loads(l) for l in path.read_text().splitlines() if l.strip()]
    mutate(lines)
    path.write_text("".join(json.dumps(l) + "\n" for l in lines))


class TestChain:

    def test_genesis_and_links(self, registry):
        populate(registry)
        entries = list(registry)
        assert entries[0].causal_hash == GENESIS_HASH
        for prev, entry in zip(entries, entries[1:]):
            assert entry.verify_chain(prev)
        assert [e.sequence for e in entries] == [0, 1, 2]

    def test_entries_are_signed(self, registry):
        populate(registry)
        assert all(e.verify_signature() for e in registry)

    def test_clean_registry_audits_valid(self, registry):
        populate(registry)
        report = audit_file(registry.path)
        assert report.valid, report.violations
        assert report.kind_counts == {"evaluation": 1, "challenge": 1, "settlement": 1}
        assert report.valid_signatures == 3

    def test_tampered_payload_detected(self, registry):
        populate(registry)

        def inflate(lines):
            lines[2]["payload"]["reward_distribution"] = {"bob": "1000000"}

        rewrite(registry.path, inflate)
        report = audit_file(registry.path)
        types = {v.violation_type for v in report.violations}
        assert "invalid_signature" in types
        assert "record_hash" in types, "A settlement whose hash no longer re-derives must be flagged"
        assert "conservation" in types

    def test_tie_paying_and_slashing_beyond_stake_detected(self, registry):
        """Rewards and slashing each fit the stake, but together they create value."""
        evaluation = _evaluation()
        challenge = RefutationChallenge.create(evaluation.hash, "bob", 80, [answer("https://ap.org/c", yes=False)])
        settlement = Settlement(
            evaluation_hash=       evaluation.hash,
            winner=                Winner.TIE,
            reward_distribution=   {"alice": 100, "bob": 80},
            slashing_distribution= {"bob": 80},
            timestamp=             "2026-01-01T12:00:00.000Z",
            challenge_hash=        challenge.challenge_hash,
        ).with_hash()
        registry.append(RecordKind.EVALUATION, evaluation.to_record(), 50)
        registry.append(RecordKind.CHALLENGE, challenge.to_dict(), 80)
        registry.append(RecordKind.SETTLEMENT, settlement.to_record(), 230)
        report = audit_file(registry.path)
        assert [v.at_sequence for v in report.of_type("conservation")] == [2]
        assert not report.of_type("record_hash"), "The record itself is intact"

    def test_removed_entry_breaks_chain(self, registry):
        populate(registry)
        rewrite(registry.path, lambda lines: lines.pop(1))
        report = audit_file(registry.path)
        assert not report.chain_valid
        assert report.of_type("sequence_gap")

    def test_settlement_without_evaluation_is_dangling(self, registry, key):
        _, _, settlement = populate(registry)
        other = SettlementRegistry(key, registry_dir=str(registry.path.parent / "other"))
        other.append(RecordKind.SETTLEMENT, settlement.to_record(), 230)
        report = audit_file(other.path)
        assert report.of_type("dangling_reference")

    def test_verify_chain_in_memory(self, registry):
        populate(registry)
        assert registry.verify_chain().valid


class TestPersistence:

    def test_state_restored_on_reopen(self, registry, key):
        evaluation, _, _ = populate(registry)
        reopened = SettlementRegistry(key, registry_dir=str(registry.path.parent))
        assert len(reopened) == 3
        assert evaluation.hash in reopened
        entry = reopened.append(RecordKind.EVALUATION, Evaluation.evaluated(
            "Another question?", [Source("c", "https://ap.org/c")], False, 0.95, "median",
        ).to_record())
        assert entry.sequence == 3
        assert audit_file(reopened.path).valid

    def test_duplicate_record_rejected(self, registry):
        evaluation = _evaluation()
        registry.append(RecordKind.EVALUATION, evaluation.to_record(), 50)
        with pytest.raises(LedgerError):
            registry.append(RecordKind.EVALUATION, evaluation.to_record(), 50)
        assert len(registry) == 1

    def test_corrupt_line_warns(self, registry, key):
        populate(registry)
        with open(registry.path, "a", encoding="utf-8") as f:
            f.write("{not json\n")
        with pytest.warns(RuntimeWarning):
            reopened = SettlementRegistry(key, registry_dir=str(registry.path.parent))
        assert len(reopened) == 3

    def test_load_entries_rejects_malformed(self, tmp_path):
        path = tmp_path / "registry.jsonl"
        path.write_text('{"kind": "evaluation"}\n')
        with pytest.raises(ValueError):
            load_entries(path)

    def test_invalid_kind_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.append("bribe", {"x": 1})

    def test_key_round_trip(self, tmp_path):
        key = Ed25519KeyManager.generate()
        key.save(tmp_path / "operator.pem")
        loaded = Ed25519KeyManager.from_file(tmp_path / "operator.pem")
        assert loaded.public_key_hex == key.public_key_hex
        signature = key.sign(b"payload")
        assert Ed25519KeyManager.verify_detached(b"payload", signature, loaded.public_key_hex)
        assert not Ed25519KeyManager.verify_detached(b"other", signature, loaded.public_key_hex)
        assert loaded.verify(b"payload", signature)

    def test_load_or_generate_persists(self, tmp_path):
        path = tmp_path / "keys" / "operator.pem"
        first = Ed25519KeyManager.load_or_generate(path)
        second = Ed25519KeyManager.load_or_generate(path)
        assert path.exists()
        assert first.public_key_hex == second.public_key_hex

    def test_stats(self, registry):
        populate(registry)
        stats = registry.get_stats()
        assert stats["total_entries"] == 3
        assert stats["by_kind"] == {"evaluation": 1, "challenge": 1, "settlement": 1}
        assert stats["head_hash"] == audit_file(registry.path).head_hash
        assert len(registry.entries_of_kind(RecordKind.SETTLEMENT)) == 1


class TestChainClient:

    def test_protocol(self, registry):
        assert isinstance(LedgerChainClient(registry), ChainClient)

    def test_submit_and_query(self, registry):
        client = LedgerChainClient(registry)
        record = _evaluation().to_record()
        receipt = client.submit_record(RecordKind.EVALUATION, record, 50)
        assert receipt.record_hash == record["evaluation_hash"]
        assert receipt.sequence == 0
        assert client.query_record(receipt.record_hash) == record

    def test_unknown_record(self, registry):
        with pytest.raises(RecordNotFound):
            LedgerChainClient(registry).query_record("0" * 64)

    def test_duplicate_submission_is_submission_error(self, registry):
        client = LedgerChainClient(registry)
        record = _evaluation().to_record()
        client.submit_record(RecordKind.EVALUATION, record, 50)
        with pytest.raises(ChainSubmissionError):
            client.submit_record(RecordKind.EVALUATION, record, 50)

    def test_schema_of_created_entry(self, key):
        entry = RegistryEntry.create(
            kind=              RecordKind.EVALUATION,
            payload=           _evaluation().to_record(),
            stake=             50,
            sequence=          0,
            signer_public_key= key.public_key_hex,
        ).sign(key)
        assert entry.validate_schema(), entry.validate_schema().errors
