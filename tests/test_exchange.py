import logging
import threading

import pytest
from nacl.signing import SigningKey
from pydantic import ValidationError

from disclosure import address_of
from exchange import ConfidentialExchange, SEED_MINT
from exchange_errors import (
    ExchangeError,
    InvalidProof,
    ReserveUnderflow,
    StaleOrReplayedProof,
    Unauthorized,
    ZeroBalance,
    translate,
)
from exchange_settings import Settings, configure_logging


def test_seed_provides_reference_pool(exchange, alice, alice_key):
    exchange.seed(alice)

    assert exchange.reveal_reserves(alice_key) == (2_000, 1_000)
    assert exchange.reveal_balance(alice_key, "usdc") == SEED_MINT - 2_000
    assert exchange.reveal_balance(alice_key, "zama") == SEED_MINT - 1_000


def test_seed_rejects_off_rate_liquidity(exchange, alice):
    with pytest.raises(ValueError):
        exchange.seed(alice, usdc=1_000, zama=1_000)
    assert exchange.reserve_handles() == [None, None]


def test_unknown_asset(exchange, alice):
    with pytest.raises(ValueError):
        exchange.mint("btc", alice, 1)


def test_preview_quotes_against_disclosed_reserves(pool, alice_key):
    assert pool.preview_usdc_for_zama(alice_key, 100) == 49
    assert pool.preview_zama_for_usdc(alice_key, 50) == 98


def test_preview_flags_uncoverable_swaps(pool, alice_key):
    with pytest.raises(ReserveUnderflow):
        pool.preview_usdc_for_zama(alice_key, 5_000)
    with pytest.raises(ReserveUnderflow):
        pool.preview_zama_for_usdc(alice_key, 1_100)


def test_concurrent_swaps_are_serialized(pool, alice_key):
    traders = [SigningKey.generate() for _ in range(4)]
    for key in traders:
        account = address_of(key)
        pool.mint("usdc", account, 1_000)
        pool.authorize(account)

    errors = []
    snapshots = []

    def trade(account):
        try:
            for _ in range(3):
                pool.swap_usdc_for_zama(account, 100)
        except ExchangeError as exc:
            errors.append(exc)

    def watch():
        try:
            for _ in range(6):
                snapshots.append(pool.reveal_reserves(alice_key))
        except ExchangeError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=trade, args=(address_of(key),)) for key in traders]
    threads.append(threading.Thread(target=watch))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    # every snapshot sits between two whole swaps
    for usdc, zama in snapshots:
        swaps, rest = divmod(usdc - 2_000, 100)
        assert rest == 0 and zama == 1_000 - swaps * 49
    # fixed rate: every 100 fUSDC buys 49 fZama regardless of ordering
    assert pool.reveal_reserves(alice_key) == (2_000 + 12 * 100, 1_000 - 12 * 49)
    for key in traders:
        assert pool.reveal_balance(key, "usdc") == 700
        assert pool.reveal_balance(key, "zama") == 3 * 49


def test_rejections_are_logged(exchange, alice, caplog):
    caplog.set_level(logging.INFO, logger="exchange")

    with pytest.raises(ZeroBalance):
        exchange.transfer("usdc", alice, alice, 1)
    assert "confidential_transfer rejected" in caplog.text


def test_deploy_applies_policy_settings(client, coprocessor, settings):
    custom = settings.model_copy(update={"disclosure_ttl_seconds": 60, "reserve_disclosure": "operator"})
    exchange = ConfidentialExchange.deploy(client, coprocessor, custom)

    assert exchange.contract(settings.executor_contract).get_metadata()["disclosure_ttl"] == 60
    assert exchange.contract(settings.swap_contract).get_metadata()["reserve_disclosure"] == "operator"


@pytest.mark.parametrize(
    "message, expected",
    [
        ("InvalidProof: proof does not bind handle", InvalidProof),
        ("StaleOrReplayedProof: bad input nonce", StaleOrReplayedProof),
        ("Unauthorized: only operator can mint", Unauthorized),
        ("ZeroBalance: con_fhe_swap has no confidential balance", ZeroBalance),
        ("ReserveUnderflow: pool holds no zama liquidity", ReserveUnderflow),
    ],
)
def test_translate_maps_categories(message, expected):
    error = translate(AssertionError(message))
    assert type(error) is expected
    assert str(error) == message.partition(":")[2].strip()


def test_translate_keeps_unknown_messages():
    error = translate(AssertionError("boom"))
    assert type(error) is ExchangeError
    assert str(error) == "boom"


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("FHESWAP_DECRYPT_VALIDITY_DAYS", "3")
    monkeypatch.setenv("FHESWAP_SWAP_CONTRACT", "con_other_pool")

    settings = Settings(_env_file=None)
    assert settings.decrypt_validity_days == 3
    assert settings.swap_contract == "con_other_pool"


def test_settings_validate_policy(monkeypatch):
    monkeypatch.setenv("FHESWAP_RESERVE_DISCLOSURE", "everyone")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_configure_logging_uses_settings_level(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    configure_logging(Settings(_env_file=None, log_level="debug"))
    assert calls[0]["level"] == "DEBUG"
