from exchange_errors import InvalidAmount, ReserveUnderflow

# ---- Chain-constant parameters & helpers (mirror contracts) ----

UINT64_MAX = 2**64 - 1

FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000
ZAMA_PRICE = 2  # fUSDC per fZama

USDC_TO_ZAMA = "usdc_to_zama"
ZAMA_TO_USDC = "zama_to_usdc"


def input_message(executor: str, contract: str, user: str, nonce: int, handles) -> str:
    # Matches con_fhe_executor.input_message
    return "FHEIN:v1|" + executor + "|" + contract + "|" + user + "|" + str(nonce) + "|" + ",".join(handles)


def validate_uint64(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an int, got {type(value).__name__}")
    if value < 0 or value > UINT64_MAX:
        raise ValueError(f"{value} is outside the uint64 range")
    return value


# ---- Plaintext quoting (what the pool computes under encryption) ------------

def apply_fee(amount: int) -> int:
    return amount * FEE_NUMERATOR // FEE_DENOMINATOR


def quote_usdc_for_zama(usdc_in: int) -> int:
    return apply_fee(usdc_in) // ZAMA_PRICE


def quote_zama_for_usdc(zama_in: int) -> int:
    return apply_fee(zama_in) * ZAMA_PRICE


def fee_skim(direction: str, amount_in: int, amount_out: int) -> int:
    """
    Part of a gross input the pool keeps, in units of the input asset:
        gross_input - pre_fee_equivalent(output)
    Rounding losses of the price conversion are retained with the fee.
    """
    if direction == USDC_TO_ZAMA:
        return amount_in - amount_out * ZAMA_PRICE
    if direction == ZAMA_TO_USDC:
        return amount_in - amount_out // ZAMA_PRICE
    raise ValueError(f"unknown direction {direction!r}")


def ensure_reserve_covers(amount_out: int, reserve: int) -> int:
    if amount_out > reserve:
        raise ReserveUnderflow(f"output {amount_out} exceeds reserve {reserve}")
    return amount_out


# ---- High-level builders -----------------------------------------------------

def build_add_liquidity(encrypted):
    """
    Returns kwargs for con_fhe_swap.add_liquidity() from a two-value input
    encrypted for the swap contract: (usdc, zama) in that order.
    """
    if len(encrypted.handles) != 2:
        raise InvalidAmount("add_liquidity needs exactly two encrypted amounts")
    return {
        'usdc_amount': encrypted.handles[0],
        'zama_amount': encrypted.handles[1],
        'proof': encrypted.proof
    }


def build_swap(encrypted):
    """
    Returns kwargs for con_fhe_swap.swap_usdc_for_zama() / swap_zama_for_usdc().
    """
    if len(encrypted.handles) != 1:
        raise InvalidAmount("a swap takes exactly one encrypted amount")
    return {
        'amount': encrypted.handles[0],
        'proof': encrypted.proof
    }


def build_confidential_transfer(encrypted, to: str):
    """
    Returns kwargs for con_confidential_token.confidential_transfer().
    """
    if len(encrypted.handles) != 1:
        raise InvalidAmount("a transfer takes exactly one encrypted amount")
    return {
        'to': to,
        'amount': encrypted.handles[0],
        'proof': encrypted.proof
    }


# ---- Convenience: plaintext shadow of the pool (optional) -------------------

class ReserveTracker:
    """
    Local mirror of pool reserves for a party holding a reserve disclosure.
    Applies the same integer rules as the contract, including the
    uncoverable-swap refund.
    """
    def __init__(self, usdc: int = 0, zama: int = 0):
        self.usdc = usdc
        self.zama = zama
        self.skimmed = {USDC_TO_ZAMA: 0, ZAMA_TO_USDC: 0}

    def apply_liquidity(self, usdc: int, zama: int):
        self.usdc += usdc
        self.zama += zama
        return self.usdc, self.zama

    def apply_usdc_for_zama(self, usdc_in: int) -> int:
        out = quote_usdc_for_zama(usdc_in)
        if out > self.zama:
            return 0
        self.usdc += usdc_in
        self.zama -= out
        self.skimmed[USDC_TO_ZAMA] += fee_skim(USDC_TO_ZAMA, usdc_in, out)
        return out

    def apply_zama_for_usdc(self, zama_in: int) -> int:
        out = quote_zama_for_usdc(zama_in)
        if out > self.usdc:
            return 0
        self.zama += zama_in
        self.usdc -= out
        self.skimmed[ZAMA_TO_USDC] += fee_skim(ZAMA_TO_USDC, zama_in, out)
        return out
