"""Shared fixtures."""
import pytest

from hekv.client.crypto import CryptoClient
from hekv.fhe import ClearBackend, load_backend
from hekv.shared.params import LookupParams
from hekv.shared.protocol import TableEntry

COUNTRIES = [
    TableEntry("France", "Paris"),
    TableEntry("Spain", "Madrid"),
]


@pytest.fixture
def clear_params():
    return LookupParams(backend="clear")


@pytest.fixture
def clear_backend():
    """Clear simulation backend with the default demo algebra (t=257, W=16)."""
    return ClearBackend(modulus=257, slot_count=16, seed=7)


@pytest.fixture
def client(clear_backend):
    return CryptoClient(clear_backend)


@pytest.fixture
def evaluator(client):
    """Public-key-only backend, as seen by the computing party."""
    return load_backend(client.public_key)


@pytest.fixture
def countries():
    return list(COUNTRIES)


@pytest.fixture
def table_file(tmp_path):
    path = tmp_path / "table.csv"
    path.write_text("France,Paris\nSpain,Madrid\nItaly,Rome\n", encoding="utf-8")
    return path


@pytest.fixture(scope="session")
def seal_client():
    """Real SEAL key set with the default demo parameters (slow to build)."""
    pytest.importorskip("Pyfhel")
    return CryptoClient.generate(LookupParams())
