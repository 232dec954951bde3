"""
FHE SWAP

Fixed-rate confidential pool between two confidential tokens:
  1 fZama = zama_price fUSDC, fee taken on the input side.

  usdc -> zama:  out = floor(floor(in * 997 / 1000) / 2)
  zama -> usdc:  out = floor(in * 997 / 1000) * 2

Reserves are encrypted handles. A swap whose output the pool cannot cover
is turned into an encrypted no-op (input refunded, nothing paid):
  covered  = out <= reserve_out
  accepted = select(covered, in, 0)
  paid     = select(covered, out, 0)
so reserve_in grows by exactly the accepted gross input.
"""

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# 'usdc' | 'zama' -> handle
reserves = Hash()

metadata = Hash()

next_tx_id = Variable()

# Events
LiquidityAddedEvent = LogEvent('LiquidityAdded', {
    'provider': {'type': str, 'idx': True},
    'usdc_amount': {'type': str},
    'zama_amount': {'type': str},
    'tx_id': {'type': int, 'idx': True}
})

SwapEvent = LogEvent('Swap', {
    'trader': {'type': str, 'idx': True},
    'asset_in': {'type': str, 'idx': True},
    'amount_in': {'type': str},
    'amount_out': {'type': str},
    'tx_id': {'type': int, 'idx': True}
})

ReservesDisclosedEvent = LogEvent('ReservesDisclosed', {
    'viewer': {'type': str, 'idx': True},
    'tx_id': {'type': int, 'idx': True}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(usdc: str, zama: str, executor: str):
    metadata['operator'] = ctx.caller
    metadata['usdc'] = usdc
    metadata['zama'] = zama
    metadata['executor'] = executor

    # 0.3% fee, 1 fZama = 2 fUSDC
    metadata['fee_numerator'] = 997
    metadata['fee_denominator'] = 1000
    metadata['zama_price'] = 2

    # 'open': anyone may be granted reserve disclosure, 'operator': operator only
    metadata['reserve_disclosure'] = 'open'

    next_tx_id.set(1)

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_metadata():
    return {
        'operator': metadata['operator'],
        'usdc': metadata['usdc'],
        'zama': metadata['zama'],
        'executor': metadata['executor'],
        'fee_numerator': metadata['fee_numerator'],
        'fee_denominator': metadata['fee_denominator'],
        'zama_price': metadata['zama_price'],
        'reserve_disclosure': metadata['reserve_disclosure']
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['operator'], 'Unauthorized: only operator can set metadata'
    assert key == 'reserve_disclosure', 'Unauthorized: only the disclosure policy is adjustable'
    assert value == 'open' or value == 'operator', 'InvalidAmount: unknown disclosure policy'
    metadata[key] = value

@export
def get_reserves():
    return [reserves['usdc'], reserves['zama']]

# -----------------------------------------------------------------------------
# Internals
# -----------------------------------------------------------------------------

def fhe():
    return importlib.import_module(metadata['executor'])

def next_tx():
    tid = next_tx_id.get()
    next_tx_id.set(tid + 1)
    return tid

def reserve(asset: str):
    handle = reserves[asset]
    if handle is None:
        handle = fhe().trivial(value=0)
        reserves[asset] = handle
    return handle

def pull(asset: str, holder: str, amount: str):
    # Requires holder to have made this contract an operator on the token
    token_name = metadata[asset]
    fhe().allow(handle=amount, account=token_name)
    token = importlib.import_module(token_name)
    return token.transfer_from_handle(holder=holder, to=ctx.this, amount=amount)

def push(asset: str, to: str, amount: str):
    token_name = metadata[asset]
    fhe().allow(handle=amount, account=token_name)
    token = importlib.import_module(token_name)
    return token.transfer_handle(to=to, amount=amount)

def settle(asset_in: str, asset_out: str, trader: str, received: str, out: str):
    executor = fhe()
    reserve_out = reserve(asset_out)
    zero = executor.trivial(value=0)

    covered = executor.le(a=out, b=reserve_out)
    accepted = executor.select(condition=covered, if_true=received, if_false=zero)
    paid = executor.select(condition=covered, if_true=out, if_false=zero)
    refund = executor.sub(a=received, b=accepted)

    reserves[asset_in] = executor.add(a=reserve(asset_in), b=accepted)
    reserves[asset_out] = executor.sub(a=reserve_out, b=paid)

    push(asset_out, trader, paid)
    push(asset_in, trader, refund)

    SwapEvent({
        'trader': trader,
        'asset_in': asset_in,
        'amount_in': accepted,
        'amount_out': paid,
        'tx_id': next_tx()
    })
    return paid

def require_liquidity(asset_out: str):
    # Only liquidity ever funds the pool's token balances
    token = importlib.import_module(metadata[asset_out])
    assert token.confidential_balance_of(account=ctx.this) is not None, 'ReserveUnderflow: pool holds no ' + asset_out + ' liquidity'

def after_fee(amount: str):
    return fhe().scale(a=amount, numerator=metadata['fee_numerator'], denominator=metadata['fee_denominator'])

# -----------------------------------------------------------------------------
# Liquidity
# -----------------------------------------------------------------------------

@export
def add_liquidity(usdc_amount: str, zama_amount: str, proof: dict):
    provider = ctx.caller
    executor = fhe()

    admitted = executor.verify_inputs(handles=[usdc_amount, zama_amount], user=provider, proof=proof)
    usdc_in = admitted[0]
    zama_in = admitted[1]

    usdc_received = pull('usdc', provider, usdc_in)
    zama_received = pull('zama', provider, zama_in)

    reserves['usdc'] = executor.add(a=reserve('usdc'), b=usdc_received)
    reserves['zama'] = executor.add(a=reserve('zama'), b=zama_received)

    LiquidityAddedEvent({
        'provider': provider,
        'usdc_amount': usdc_received,
        'zama_amount': zama_received,
        'tx_id': next_tx()
    })

# -----------------------------------------------------------------------------
# Swaps
# -----------------------------------------------------------------------------

@export
def swap_usdc_for_zama(amount: str, proof: dict):
    trader = ctx.caller
    require_liquidity('zama')
    amount_in = fhe().verify_input(handle=amount, user=trader, proof=proof)
    received = pull('usdc', trader, amount_in)

    zama_out = fhe().scale(a=after_fee(received), numerator=1, denominator=metadata['zama_price'])
    return settle('usdc', 'zama', trader, received, zama_out)

@export
def swap_zama_for_usdc(amount: str, proof: dict):
    trader = ctx.caller
    require_liquidity('usdc')
    amount_in = fhe().verify_input(handle=amount, user=trader, proof=proof)
    received = pull('zama', trader, amount_in)

    usdc_out = fhe().scale(a=after_fee(received), numerator=metadata['zama_price'], denominator=1)
    return settle('zama', 'usdc', trader, received, usdc_out)

# -----------------------------------------------------------------------------
# Disclosure
# -----------------------------------------------------------------------------

@export
def allow_reserves(viewer: str):
    if metadata['reserve_disclosure'] == 'operator':
        assert ctx.caller == metadata['operator'], 'Unauthorized: only operator can disclose reserves'

    executor = fhe()
    executor.allow_reveal(handle=reserve('usdc'), viewer=viewer)
    executor.allow_reveal(handle=reserve('zama'), viewer=viewer)

    ReservesDisclosedEvent({
        'viewer': viewer,
        'tx_id': next_tx()
    })
