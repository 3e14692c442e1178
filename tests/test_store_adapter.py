"""
Proposal Record Store Adapter Test Suite

Coverage:
  - Key layout and the stored JSON document
  - Index reads: absent, blank, corrupt
  - Record loads: missing, corrupt JSON, foreign tally token, legacy
    documents without status/category
  - Index appends: idempotence, compare-and-set under contention,
    lost appends on stores without compare-and-set
  - replace_record retry / exhaustion
  - Store call timeouts
"""

import asyncio
import json
import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from ethics_dao.exceptions import (
    ConcurrentUpdateError,
    DecodeError,
    LedgerTimeoutError,
    NotFoundError,
)
from ethics_dao.ledger import (
    InMemoryLedgerStore,
    ProposalCategory,
    ProposalRecord,
    ProposalStatus,
    ProposalStoreAdapter,
    record_key,
    voters_key,
)
from ethics_dao.ledger.adapter import decode_id_list, encode_id_list
from ethics_dao.tally import EMPTY_TALLY_TOKEN, VoteTriple, encode


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

class PlainStore:
    """Store offering only the minimal contract (no compare-and-set)."""

    def __init__(self, latency: float = 0.0):
        self._inner = InMemoryLedgerStore(latency=latency)

    async def is_available(self):
        return await self._inner.is_available()

    async def get_data(self, key):
        return await self._inner.get_data(key)

    async def set_data(self, key, value):
        return await self._inner.set_data(key, value)


class ContendedStore(InMemoryLedgerStore):
    """Compare-and-set fails for the first *losses* attempts."""

    def __init__(self, losses: int):
        super().__init__()
        self.losses = losses
        self.cas_calls = 0

    async def compare_and_set(self, key, expected, value):
        self.cas_calls += 1
        if self.losses > 0:
            self.losses -= 1
            return False
        return await super().compare_and_set(key, expected, value)


def make_record(proposal_id="prop-1700000000000-abcd", **overrides) -> ProposalRecord:
    fields = dict(
        id=proposal_id,
        title="Gene therapy trial",
        description="Phase I safety review",
        category=ProposalCategory.MEDICAL,
        proposer="0x1111111111111111111111111111111111111111",
        encrypted_tally=EMPTY_TALLY_TOKEN,
        timestamp=1700000000,
    )
    fields.update(overrides)
    return ProposalRecord(**fields)


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def adapter(store):
    return ProposalStoreAdapter(store)


# ══════════════════════════════════════════════════════════════════════
#  KEY LAYOUT & DOCUMENT FORMAT
# ══════════════════════════════════════════════════════════════════════

class TestKeyLayout:

    def test_keys(self):
        assert record_key("prop-1-a") == "proposal_prop-1-a"
        assert voters_key("prop-1-a") == "proposal_voters_prop-1-a"

    def test_id_list_helpers(self):
        assert decode_id_list(b"") == []
        assert decode_id_list(b"  \n") == []
        assert decode_id_list(encode_id_list(["a", "b"])) == ["a", "b"]

    @pytest.mark.parametrize("payload", [
        b"not json",
        b'{"a": 1}',
        b"[1, 2]",
        b"\xff\xfe",
    ])
    def test_id_list_rejects_garbage(self, payload):
        with pytest.raises(DecodeError):
            decode_id_list(payload)

    @pytest.mark.asyncio
    async def test_record_document_fields(self, store, adapter):
        record = make_record()
        await adapter.write_record(record)

        doc = json.loads(store._data[record_key(record.id)].decode("utf-8"))
        assert doc == {
            "id": record.id,
            "title": "Gene therapy trial",
            "description": "Phase I safety review",
            "encryptedVotes": "FHE-MA==",
            "timestamp": 1700000000,
            "proposer": "0x1111111111111111111111111111111111111111",
            "status": "pending",
            "category": "Medical",
        }

    @pytest.mark.asyncio
    async def test_non_ascii_text_survives(self, adapter):
        record = make_record(title="Étude clinique 臨床", description="Überprüfung")
        await adapter.write_record(record)
        loaded = await adapter.load_record(record.id)
        assert loaded.title == "Étude clinique 臨床"
        assert loaded.description == "Überprüfung"


# ══════════════════════════════════════════════════════════════════════
#  INDEX READS
# ══════════════════════════════════════════════════════════════════════

class TestReadIndex:

    @pytest.mark.asyncio
    async def test_absent_index_is_empty(self, adapter):
        assert await adapter.read_index() == []

    @pytest.mark.asyncio
    async def test_blank_index_is_empty(self, store, adapter):
        await store.set_data("proposal_keys", b"   ")
        assert await adapter.read_index() == []

    @pytest.mark.asyncio
    async def test_corrupt_index_reads_empty(self, store, adapter):
        await store.set_data("proposal_keys", b"{broken")
        assert await adapter.read_index() == []

    @pytest.mark.asyncio
    async def test_corrupt_index_is_not_overwritten(self, store, adapter):
        await store.set_data("proposal_keys", b"{broken")
        with pytest.raises(DecodeError):
            await adapter.append_to_index("prop-1-a")
        assert store._data["proposal_keys"] == b"{broken"


# ══════════════════════════════════════════════════════════════════════
#  RECORD LOADS
# ══════════════════════════════════════════════════════════════════════

class TestLoadRecords:

    @pytest.mark.asyncio
    async def test_missing_record_is_none(self, adapter):
        assert await adapter.load_record("prop-0-none") is None

    @pytest.mark.asyncio
    async def test_round_trip(self, adapter):
        record = make_record(encrypted_tally=encode(VoteTriple(2, 1, 0)))
        await adapter.write_record(record)
        loaded = await adapter.load_record(record.id)
        assert loaded == record
        assert loaded.decode_tally() == VoteTriple(2, 1, 0)

    @pytest.mark.asyncio
    async def test_corrupt_json_raises(self, store, adapter):
        await store.set_data(record_key("prop-1-a"), b"{oops")
        with pytest.raises(DecodeError):
            await adapter.load_record("prop-1-a")

    @pytest.mark.asyncio
    async def test_foreign_token_raises(self, store, adapter):
        doc = make_record(proposal_id="prop-1-a").to_dict()
        doc["encryptedVotes"] = "ENC-deadbeef"
        await store.set_data(record_key("prop-1-a"), json.dumps(doc).encode())
        with pytest.raises(DecodeError):
            await adapter.load_record("prop-1-a")

    @pytest.mark.asyncio
    async def test_legacy_document_defaults(self, store, adapter):
        doc = {
            "title": "Old proposal",
            "description": "Written before status and category existed",
            "encryptedVotes": "FHE-MA==",
            "timestamp": 1600000000,
            "proposer": "0xabc",
        }
        await store.set_data(record_key("prop-1-old"), json.dumps(doc).encode())

        record = await adapter.load_record("prop-1-old")
        assert record.id == "prop-1-old"
        assert record.status is ProposalStatus.PENDING
        assert record.category is ProposalCategory.OTHER

    @pytest.mark.asyncio
    async def test_encrypted_tally_field_accepted(self, store, adapter):
        doc = make_record(proposal_id="prop-1-a").to_dict()
        doc["encryptedTally"] = doc.pop("encryptedVotes")
        await store.set_data(record_key("prop-1-a"), json.dumps(doc).encode())
        record = await adapter.load_record("prop-1-a")
        assert record.encrypted_tally == EMPTY_TALLY_TOKEN

    @pytest.mark.asyncio
    async def test_stored_under_key_wins_over_embedded_id(self, store, adapter):
        doc = make_record(proposal_id="prop-1-other").to_dict()
        await store.set_data(record_key("prop-1-a"), json.dumps(doc).encode())
        record = await adapter.load_record("prop-1-a")
        assert record.id == "prop-1-a"

    @pytest.mark.asyncio
    async def test_load_records_skips_missing_and_corrupt(self, store, adapter):
        good_a = make_record(proposal_id="prop-1-a")
        good_b = make_record(proposal_id="prop-2-b")
        await adapter.write_record(good_a)
        await adapter.write_record(good_b)
        await store.set_data(record_key("prop-3-bad"), b"not json")

        records = await adapter.load_records(
            ["prop-1-a", "prop-3-bad", "prop-4-missing", "prop-2-b"]
        )
        assert [r.id for r in records] == ["prop-1-a", "prop-2-b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field, value", [
        ("title", 123),
        ("description", ["not", "text"]),
        ("proposer", {"address": "0xabc"}),
        ("id", 42),
        ("timestamp", float("inf")),
        ("timestamp", float("nan")),
    ])
    async def test_load_records_skips_wrongly_typed_fields(self, store, adapter, field, value):
        good = make_record(proposal_id="prop-1-a")
        await adapter.write_record(good)
        doc = make_record(proposal_id="prop-2-bad").to_dict()
        doc[field] = value
        await store.set_data(record_key("prop-2-bad"), json.dumps(doc).encode("utf-8"))

        with pytest.raises(DecodeError):
            await adapter.load_record("prop-2-bad")
        records = await adapter.load_records(["prop-1-a", "prop-2-bad"])
        assert [r.id for r in records] == ["prop-1-a"]


# ══════════════════════════════════════════════════════════════════════
#  INDEX APPENDS
# ══════════════════════════════════════════════════════════════════════

class TestAppendToIndex:

    @pytest.mark.asyncio
    async def test_append_preserves_order(self, adapter):
        await adapter.append_to_index("prop-1-a")
        await adapter.append_to_index("prop-2-b")
        assert await adapter.read_index() == ["prop-1-a", "prop-2-b"]

    @pytest.mark.asyncio
    async def test_append_is_idempotent(self, adapter):
        await adapter.append_to_index("prop-1-a")
        await adapter.append_to_index("prop-1-a")
        assert await adapter.read_index() == ["prop-1-a"]

    @pytest.mark.asyncio
    async def test_concurrent_appends_through_one_adapter(self):
        adapter = ProposalStoreAdapter(PlainStore(latency=0.001))
        ids = [f"prop-{i}-x" for i in range(20)]
        await asyncio.gather(*(adapter.append_to_index(i) for i in ids))
        assert sorted(await adapter.read_index()) == sorted(ids)

    @pytest.mark.asyncio
    async def test_concurrent_appends_from_separate_adapters_with_cas(self):
        store = InMemoryLedgerStore(latency=0.001)
        adapters = [ProposalStoreAdapter(store, cas_retries=50) for _ in range(5)]
        ids = [f"prop-{i}-x" for i in range(5)]
        await asyncio.gather(*(a.append_to_index(i) for a, i in zip(adapters, ids)))
        assert sorted(await adapters[0].read_index()) == sorted(ids)

    @pytest.mark.asyncio
    async def test_separate_adapters_without_cas_can_lose_appends(self):
        store = PlainStore(latency=0.01)
        first = ProposalStoreAdapter(store)
        second = ProposalStoreAdapter(store)
        await asyncio.gather(
            first.append_to_index("prop-1-a"),
            second.append_to_index("prop-2-b"),
        )
        assert len(await first.read_index()) == 1

    @pytest.mark.asyncio
    async def test_cas_retries_after_lost_race(self):
        store = ContendedStore(losses=2)
        adapter = ProposalStoreAdapter(store, cas_retries=3)
        assert await adapter.append_to_index("prop-1-a") == ["prop-1-a"]
        assert store.cas_calls == 3

    @pytest.mark.asyncio
    async def test_cas_exhaustion_raises(self):
        store = ContendedStore(losses=10)
        adapter = ProposalStoreAdapter(store, cas_retries=3)
        with pytest.raises(ConcurrentUpdateError):
            await adapter.append_to_index("prop-1-a")
        assert "proposal_keys" not in store.keys()

    def test_supports_cas(self):
        assert ProposalStoreAdapter(InMemoryLedgerStore()).supports_cas
        assert not ProposalStoreAdapter(PlainStore()).supports_cas


# ══════════════════════════════════════════════════════════════════════
#  REPLACE RECORD & VOTER ROLLS
# ══════════════════════════════════════════════════════════════════════

class TestReplaceRecord:

    @pytest.mark.asyncio
    async def test_replace_applies_update(self, adapter):
        record = make_record()
        await adapter.write_record(record)
        token = encode(VoteTriple(1, 0, 0))
        updated = await adapter.replace_record(record.id, lambda r: r.with_tally(token))
        assert updated.encrypted_tally == token
        assert (await adapter.load_record(record.id)).encrypted_tally == token

    @pytest.mark.asyncio
    async def test_replace_missing_record(self, adapter):
        with pytest.raises(NotFoundError):
            await adapter.replace_record("prop-0-none", lambda r: r)

    @pytest.mark.asyncio
    async def test_replace_reapplies_after_conflict(self):
        store = ContendedStore(losses=1)
        adapter = ProposalStoreAdapter(store)
        record = make_record()
        await adapter.write_record(record)
        calls = []

        def update(current):
            calls.append(current)
            return current.with_tally(encode(VoteTriple(0, 1, 0)))

        await adapter.replace_record(record.id, update, retries=2)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_replace_exhaustion(self):
        store = ContendedStore(losses=5)
        adapter = ProposalStoreAdapter(store)
        record = make_record()
        await adapter.write_record(record)
        with pytest.raises(ConcurrentUpdateError):
            await adapter.replace_record(record.id, lambda r: r, retries=2)


class TestVoterRolls:

    @pytest.mark.asyncio
    async def test_add_and_read_voters(self, store, adapter):
        await adapter.add_voter("prop-1-a", "0xaaa")
        await adapter.add_voter("prop-1-a", "0xbbb")
        await adapter.add_voter("prop-1-a", "0xaaa")
        assert await adapter.read_voters("prop-1-a") == ["0xaaa", "0xbbb"]
        assert voters_key("prop-1-a") in store.keys()

    @pytest.mark.asyncio
    async def test_voter_roll_separate_from_index(self, adapter):
        await adapter.add_voter("prop-1-a", "0xaaa")
        assert await adapter.read_index() == []

    @pytest.mark.asyncio
    async def test_add_voter_reports_claim(self, adapter):
        assert await adapter.add_voter("prop-1-a", "0xaaa") is True
        assert await adapter.add_voter("prop-1-a", "0xaaa") is False
        assert await adapter.add_voter("prop-1-a", "0xbbb") is True

    @pytest.mark.asyncio
    async def test_concurrent_claims_for_one_voter(self):
        store = InMemoryLedgerStore(latency=0.001)
        first = ProposalStoreAdapter(store)
        second = ProposalStoreAdapter(store)
        claims = await asyncio.gather(
            first.add_voter("prop-1-a", "0xaaa"),
            second.add_voter("prop-1-a", "0xaaa"),
            first.add_voter("prop-1-a", "0xaaa"),
        )
        assert sorted(claims) == [False, False, True]
        assert await first.read_voters("prop-1-a") == ["0xaaa"]

    @pytest.mark.asyncio
    async def test_remove_voter(self, adapter):
        await adapter.add_voter("prop-1-a", "0xaaa")
        await adapter.add_voter("prop-1-a", "0xbbb")
        await adapter.remove_voter("prop-1-a", "0xaaa")
        await adapter.remove_voter("prop-1-a", "0xccc")
        assert await adapter.read_voters("prop-1-a") == ["0xbbb"]
        assert await adapter.add_voter("prop-1-a", "0xaaa") is True


# ══════════════════════════════════════════════════════════════════════
#  TIMEOUTS
# ══════════════════════════════════════════════════════════════════════

class TestTimeouts:

    @pytest.mark.asyncio
    async def test_slow_store_times_out(self):
        adapter = ProposalStoreAdapter(InMemoryLedgerStore(latency=0.5), timeout=0.05)
        with pytest.raises(LedgerTimeoutError):
            await adapter.read_index()

    @pytest.mark.asyncio
    async def test_timeout_error_is_builtin_timeout(self):
        adapter = ProposalStoreAdapter(InMemoryLedgerStore(latency=0.5), timeout=0.05)
        with pytest.raises(TimeoutError):
            await adapter.write_record(make_record())

    @pytest.mark.asyncio
    async def test_fast_store_within_timeout(self):
        adapter = ProposalStoreAdapter(InMemoryLedgerStore(), timeout=1.0)
        await adapter.append_to_index("prop-1-a")
        assert await adapter.read_index() == ["prop-1-a"]
