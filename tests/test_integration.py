"""Integration tests for the full pipeline."""
import pytest
from fastapi.testclient import TestClient

from hekv.client.crypto import CryptoClient
from hekv.client.lookup import LookupClient
from hekv.server.api import create_app
from hekv.server.compute import ComputeEngine
from hekv.server.store import LookupService
from hekv.shared.params import LookupParams
from hekv.shared.protocol import TableEntry
from hekv.shared.utils import Metrics, from_b64, to_b64


def encrypted_rows(crypto, entries):
    return [(crypto.serialize(e.key), crypto.serialize(e.value)) for e in crypto.encrypt_table(entries)]


class TestInProcessLookup:
    """Client and compute engine wired together by function call."""

    def test_lookup_accuracy(self, client, evaluator):
        entries = [TableEntry(f"key{i:02d}", f"value{i:02d}") for i in range(20)]
        engine = ComputeEngine(evaluator)
        rows = encrypted_rows(client, entries)
        lookup = LookupClient(client)

        for i in (0, 7, 19):
            result = lookup.lookup_serialized(
                f"key{i:02d}", lambda q: engine.lookup_serialized(q, rows)
            )
            assert result.found
            assert result.value == f"value{i:02d}"

        assert not lookup.lookup_serialized("key99", lambda q: engine.lookup_serialized(q, rows)).found

    def test_lookup_timing(self, client, countries):
        engine = ComputeEngine(client.backend)
        table = client.encrypt_table(countries)
        metrics = Metrics()

        result = LookupClient(client).lookup(
            "France", lambda q: engine.lookup(q, table, metrics=metrics), metrics=metrics
        )

        assert result.value == "Paris"
        assert result.metrics is metrics
        assert "encrypt_query" in metrics.timings
        assert "server_compute" in metrics.timings
        assert "decrypt_result" in metrics.timings
        assert metrics.total_ms > 0
        assert result.raw[:5] == [80, 97, 114, 105, 115]


class TestStoreRoundTrip:
    """Owner fills the store, querier looks up through serialized commands."""

    def test_separate_owner_and_querier(self, client, countries):
        owner = CryptoClient.from_public_key(client.public_key)
        assert not owner.has_secret_key

        service = LookupService(workers=2)
        service.set_public_context(client.public_key.context, client.public_key.key)
        for key, value in encrypted_rows(owner, countries):
            service.set_entry(key, value)

        result = LookupClient(client).lookup_serialized("Spain", service.lookup)
        assert str(result) == "Madrid"

    def test_key_file_round_trip(self, client, tmp_path, countries):
        path = tmp_path / "keys.txt"
        client.export_keypair(path)
        restored = CryptoClient.from_key_file(path)
        assert restored.has_secret_key

        engine = ComputeEngine(client.backend)
        rows = encrypted_rows(client, countries)
        result = LookupClient(restored).lookup_serialized(
            "France", lambda q: engine.lookup_serialized(q, rows)
        )
        assert result.value == "Paris"


class TestHttpLookup:
    """Full flow over the HTTP API."""

    def test_lookup_over_http(self, countries):
        crypto = CryptoClient.generate(LookupParams(backend="clear"))
        api = TestClient(create_app(workers=2))

        public_key = crypto.public_key
        api.post("/context", json={
            "context_b64": to_b64(public_key.context),
            "public_key_b64": to_b64(public_key.key),
        }).raise_for_status()
        for key, value in encrypted_rows(crypto, countries):
            api.post("/entries", json={"key_b64": to_b64(key), "value_b64": to_b64(value)}).raise_for_status()

        def send(payload):
            response = api.post("/lookup", json={"query_b64": to_b64(payload)})
            response.raise_for_status()
            return from_b64(response.json()["result_b64"])

        lookup = LookupClient(crypto)
        assert lookup.lookup_serialized("Spain", send).value == "Madrid"
        assert lookup.lookup_serialized("Portugal", send).value is None


@pytest.mark.slow
class TestSealStoreRoundTrip:

    def test_store_lookup(self, seal_client, countries):
        service = LookupService()
        public_key = seal_client.public_key
        service.set_public_context(public_key.context, public_key.key)
        for key, value in encrypted_rows(seal_client, countries):
            service.set_entry(key, value)

        lookup = LookupClient(seal_client)
        assert lookup.lookup_serialized("Spain", service.lookup).value == "Madrid"
        assert lookup.lookup_serialized("Italy", service.lookup).value is None
