import pytest

import client_helper
from coprocessor import EncryptedInput
from exchange_errors import InvalidAmount, ReserveUnderflow


def test_quote_usdc_for_zama_floors_twice():
    assert client_helper.apply_fee(100) == 99
    assert client_helper.quote_usdc_for_zama(100) == 49


def test_quote_zama_for_usdc():
    assert client_helper.apply_fee(50) == 49
    assert client_helper.quote_zama_for_usdc(50) == 98


def test_small_inputs_round_to_zero():
    assert client_helper.quote_usdc_for_zama(1) == 0
    assert client_helper.quote_zama_for_usdc(1) == 0


def test_fee_skim_accounts_for_every_unit():
    assert client_helper.fee_skim(client_helper.USDC_TO_ZAMA, 100, 49) == 2
    assert client_helper.fee_skim(client_helper.ZAMA_TO_USDC, 50, 98) == 1

    with pytest.raises(ValueError):
        client_helper.fee_skim("sideways", 1, 1)


def test_ensure_reserve_covers():
    assert client_helper.ensure_reserve_covers(49, 1000) == 49
    assert client_helper.ensure_reserve_covers(1000, 1000) == 1000

    with pytest.raises(ReserveUnderflow):
        client_helper.ensure_reserve_covers(1001, 1000)


@pytest.mark.parametrize("value", [-1, 2**64, 1.5, True, "3"])
def test_validate_uint64_rejects(value):
    with pytest.raises(ValueError):
        client_helper.validate_uint64(value)


def test_validate_uint64_bounds():
    assert client_helper.validate_uint64(0) == 0
    assert client_helper.validate_uint64(2**64 - 1) == 2**64 - 1


def test_input_message_layout():
    message = client_helper.input_message("con_fhe_executor", "con_fhe_swap", "alice", 3, ["aa", "bb"])
    assert message == "FHEIN:v1|con_fhe_executor|con_fhe_swap|alice|3|aa,bb"


def test_builders_map_handles():
    proof = {"handles": ["a", "b"], "nonce": 1, "signature": "00"}
    plan = client_helper.build_add_liquidity(EncryptedInput(handles=["a", "b"], proof=proof))
    assert plan == {"usdc_amount": "a", "zama_amount": "b", "proof": proof}

    single = EncryptedInput(handles=["c"], proof=proof)
    assert client_helper.build_swap(single) == {"amount": "c", "proof": proof}
    assert client_helper.build_confidential_transfer(single, "bob")["to"] == "bob"


def test_builders_reject_wrong_arity():
    proof = {"handles": ["a"], "nonce": 1, "signature": "00"}
    with pytest.raises(InvalidAmount):
        client_helper.build_add_liquidity(EncryptedInput(handles=["a"], proof=proof))
    with pytest.raises(InvalidAmount):
        client_helper.build_swap(EncryptedInput(handles=["a", "b"], proof=proof))


def test_reserve_tracker_matches_reference_scenario():
    tracker = client_helper.ReserveTracker()
    tracker.apply_liquidity(2_000, 1_000)

    assert tracker.apply_usdc_for_zama(100) == 49
    assert (tracker.usdc, tracker.zama) == (2_100, 951)

    assert tracker.apply_zama_for_usdc(50) == 98
    assert (tracker.usdc, tracker.zama) == (2_002, 1_001)

    assert tracker.skimmed == {client_helper.USDC_TO_ZAMA: 2, client_helper.ZAMA_TO_USDC: 1}


def test_reserve_tracker_refunds_uncoverable_swap():
    tracker = client_helper.ReserveTracker(usdc=2_000, zama=1_000)
    assert tracker.apply_usdc_for_zama(5_000) == 0
    assert (tracker.usdc, tracker.zama) == (2_000, 1_000)
