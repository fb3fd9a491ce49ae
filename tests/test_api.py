"""Tests for the FastAPI transport."""
from unittest.mock import MagicMock

import pytest
import redis
from fastapi.testclient import TestClient

from hekv.client.crypto import CryptoClient
from hekv.server.api import create_app
from hekv.server.store import RedisStore
from hekv.shared.protocol import FHE_CONTEXT_KEY
from hekv.shared.utils import from_b64, to_b64

# unpickling this looks up a missing builtins attribute
CRAFTED_PICKLE = b"c__builtin__\nnope\n."


@pytest.fixture
def api():
    return TestClient(create_app())


def post_context(api, client):
    public_key = client.public_key
    return api.post("/context", json={
        "context_b64": to_b64(public_key.context),
        "public_key_b64": to_b64(public_key.key),
    })


def post_entries(api, client, entries):
    for entry in client.encrypt_table(entries):
        response = api.post("/entries", json={
            "key_b64": to_b64(client.serialize(entry.key)),
            "value_b64": to_b64(client.serialize(entry.value)),
        })
        assert response.status_code == 200
        assert response.json() == {"status": "OK"}


def post_lookup(api, client, text):
    return api.post("/lookup", json={"query_b64": to_b64(client.serialize(client.encrypt_text(text)))})


class TestHealth:

    def test_empty_server(self, api):
        response = api.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "num_entries": 0, "context_set": False}

    def test_counts_entries(self, api, client, countries):
        post_context(api, client)
        post_entries(api, client, countries)
        data = api.get("/health").json()
        assert data["num_entries"] == 2
        assert data["context_set"] is True


class TestLookupEndpoint:

    def test_hit(self, api, client, countries):
        assert post_context(api, client).json() == {"status": "OK"}
        post_entries(api, client, countries)

        response = post_lookup(api, client, "Spain")
        assert response.status_code == 200
        data = response.json()
        assert data["num_entries"] == 2
        assert data["server_time_ms"] >= 0
        result = client.deserialize(from_b64(data["result_b64"]))
        assert client.decrypt_text(result) == "Madrid"

    def test_miss(self, api, client, countries):
        post_context(api, client)
        post_entries(api, client, countries)
        data = post_lookup(api, client, "Italy").json()
        assert client.decrypt_text(client.deserialize(from_b64(data["result_b64"]))) is None

    def test_without_context(self, api, client):
        response = post_lookup(api, client, "Spain")
        assert response.status_code == 409

    def test_malformed_query(self, api, client):
        post_context(api, client)
        response = api.post("/lookup", json={"query_b64": to_b64(b"\x00garbage")})
        assert response.status_code == 400
        assert "deserialize" in response.json()["detail"]

    def test_crafted_pickle_query(self, api, client):
        post_context(api, client)
        response = api.post("/lookup", json={"query_b64": to_b64(CRAFTED_PICKLE)})
        assert response.status_code == 400

    def test_entries_from_replaced_context(self, api, client, clear_params, countries):
        post_context(api, client)
        post_entries(api, client, countries)
        newcomer = CryptoClient.generate(clear_params)
        assert post_context(api, newcomer).status_code == 200

        response = post_lookup(api, newcomer, "Spain")
        assert response.status_code == 409
        assert "Stored table" in response.json()["detail"]


class TestBadInput:

    def test_invalid_base64(self, api):
        response = api.post("/context", json={"context_b64": "!!!", "public_key_b64": "AAAA"})
        assert response.status_code == 400
        assert "context_b64" in response.json()["detail"]

    def test_invalid_key_material(self, api):
        response = api.post("/context", json={
            "context_b64": to_b64(b"\x00nope"),
            "public_key_b64": to_b64(b"\x00nope"),
        })
        assert response.status_code == 400

    def test_crafted_pickle_context(self, api):
        response = api.post("/context", json={
            "context_b64": to_b64(CRAFTED_PICKLE),
            "public_key_b64": to_b64(CRAFTED_PICKLE),
        })
        assert response.status_code == 400
        assert "Malformed" in response.json()["detail"]

    def test_reserved_entry_key(self, api):
        response = api.post("/entries", json={
            "key_b64": to_b64(FHE_CONTEXT_KEY),
            "value_b64": to_b64(b"x"),
        })
        assert response.status_code == 400

    def test_missing_field(self, api):
        response = api.post("/lookup", json={})
        assert response.status_code == 422


class TestStoreFailures:
    """Store errors map to 503 with the store's message."""

    @pytest.fixture
    def broken_api(self):
        mock_client = MagicMock()
        mock_client.get.side_effect = redis.ConnectionError("Connection refused")
        mock_client.set.side_effect = redis.ConnectionError("Connection refused")
        mock_client.scan_iter.side_effect = redis.ConnectionError("Connection refused")
        return TestClient(create_app(RedisStore(client=mock_client)))

    def test_health(self, broken_api):
        response = broken_api.get("/health")
        assert response.status_code == 503
        assert response.json()["detail"] == "Connection refused"

    def test_lookup(self, broken_api):
        response = broken_api.post("/lookup", json={"query_b64": to_b64(b"q")})
        assert response.status_code == 503

    def test_set_context(self, broken_api, client):
        response = post_context(broken_api, client)
        assert response.status_code == 503
