import hashlib
from pathlib import Path

import contracting
import pytest
from contracting.client import ContractingClient
from contracting.compilation import whitelists
from nacl.signing import SigningKey

from coprocessor import Coprocessor
from disclosure import address_of
from exchange import ConfidentialExchange
from exchange_settings import Settings

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SUBMISSION_PATH = (
    Path(contracting.__file__).resolve().parent / "contracts" / "submission.s.py"
)


@pytest.fixture(scope="session", autouse=True)
def enable_sha3_and_whitelist():
    whitelists.ALLOWED_BUILTINS.update({"hashlib", "decimal"})

    if not hasattr(hashlib, "sha3"):
        def _sha3(data):
            if isinstance(data, str):
                data = data.encode("utf-8")
            return hashlib.sha3_256(data).hexdigest()

        setattr(hashlib, "sha3", _sha3)


@pytest.fixture
def client():
    client = ContractingClient(signer="operator", metering=False)
    client.flush()
    client.set_submission_contract(str(SUBMISSION_PATH))
    return client


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def coprocessor(client, settings):
    return Coprocessor(client, executor=settings.executor_contract)


@pytest.fixture
def exchange(client, coprocessor, settings):
    return ConfidentialExchange.deploy(client, coprocessor, settings)


@pytest.fixture
def executor(exchange, settings):
    return exchange.contract(settings.executor_contract)


@pytest.fixture
def usdc(exchange, settings):
    return exchange.contract(settings.usdc_contract)


@pytest.fixture
def swap(exchange, settings):
    return exchange.contract(settings.swap_contract)


@pytest.fixture
def alice_key():
    return SigningKey.generate()


@pytest.fixture
def bob_key():
    return SigningKey.generate()


@pytest.fixture
def alice(alice_key):
    return address_of(alice_key)


@pytest.fixture
def bob(bob_key):
    return address_of(bob_key)


@pytest.fixture
def pool(exchange, alice):
    """Alice holds 50_000 of each asset and seeded the pool with 2000 fUSDC / 1000 fZama."""
    exchange.mint("usdc", alice, 50_000)
    exchange.mint("zama", alice, 50_000)
    exchange.authorize(alice)
    exchange.add_liquidity(alice, 2_000, 1_000)
    return exchange
