"""
CONFIDENTIAL TOKEN

Balances are encrypted handles owned by the FHE executor.
Transfers never branch on plaintext:
  - moved = select(amount <= balance, amount, 0)
  - balance_from_new = balance_from_old - moved
  - balance_to_new   = balance_to_old + moved

Operators are time-bounded: a spender may move a holder's balance while
now < until. The token and the owner are always allowed on the owner's balance.
"""

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# address -> handle
balances = Hash()

# (holder, operator) -> datetime until which the operator is active
operators = Hash()

metadata = Hash()

# encrypted total supply handle
total_supply = Variable()

next_tx_id = Variable()

# Events
ConfidentialTransferEvent = LogEvent('ConfidentialTransfer', {
    'from': {'type': str, 'idx': True},
    'to': {'type': str, 'idx': True},
    'amount': {'type': str},
    'tx_id': {'type': int, 'idx': True}
})

OperatorSetEvent = LogEvent('OperatorSet', {
    'holder': {'type': str, 'idx': True},
    'operator': {'type': str, 'idx': True},
    'until': {'type': str},
    'tx_id': {'type': int, 'idx': True}
})

MintEvent = LogEvent('Mint', {
    'to': {'type': str, 'idx': True},
    'amount': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(name: str, symbol: str, executor: str):
    metadata['name'] = name
    metadata['symbol'] = symbol
    metadata['operator'] = ctx.caller
    metadata['executor'] = executor

    # Test tokens: anyone may mint to anyone
    metadata['open_mint'] = True

    next_tx_id.set(1)

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_metadata():
    return {
        'name': metadata['name'],
        'symbol': metadata['symbol'],
        'operator': metadata['operator'],
        'executor': metadata['executor'],
        'open_mint': metadata['open_mint']
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['operator'], 'Unauthorized: only operator can set metadata'
    assert key != 'executor', 'Unauthorized: executor is fixed at construction'
    metadata[key] = value

@export
def confidential_balance_of(account: str):
    return balances[account]

@export
def confidential_total_supply():
    return total_supply.get()

@export
def is_operator(holder: str, spender: str):
    if holder == spender:
        return True
    until = operators[holder, spender]
    if until is None:
        return False
    return now < until

# -----------------------------------------------------------------------------
# Internals
# -----------------------------------------------------------------------------

def fhe():
    return importlib.import_module(metadata['executor'])

def next_tx():
    tid = next_tx_id.get()
    next_tx_id.set(tid + 1)
    return tid

def set_balance(account: str, handle: str):
    balances[account] = handle
    fhe().allow(handle=handle, account=account)

def require_operator(holder: str):
    assert is_operator(holder, ctx.caller), 'Unauthorized: ' + ctx.caller + ' is not an active operator for ' + holder

def require_caller_allowed(amount: str):
    assert fhe().is_allowed(handle=amount, account=ctx.caller), 'Unauthorized: caller may not use amount handle'

def update(from_address, to: str, amount: str):
    executor = fhe()
    moved = amount

    if from_address is None:
        supply = total_supply.get()
        if supply is None:
            supply = executor.trivial(value=0)
        total_supply.set(executor.add(a=supply, b=amount))
    else:
        balance = balances[from_address]
        assert balance is not None, 'ZeroBalance: ' + from_address + ' has no confidential balance'
        fits = executor.le(a=amount, b=balance)
        moved = executor.select(condition=fits, if_true=amount, if_false=executor.trivial(value=0))
        set_balance(from_address, executor.sub(a=balance, b=moved))

    current = balances[to]
    if current is None:
        current = executor.trivial(value=0)
    set_balance(to, executor.add(a=current, b=moved))

    executor.allow(handle=moved, account=ctx.caller)
    return moved

# -----------------------------------------------------------------------------
# Mint
# -----------------------------------------------------------------------------

@export
def mint(to: str, amount: int):
    if not metadata['open_mint']:
        assert ctx.caller == metadata['operator'], 'Unauthorized: only operator can mint'
    assert amount > 0, 'InvalidAmount: mint amount must be positive'

    handle = fhe().trivial(value=amount)
    update(None, to, handle)

    MintEvent({
        'to': to,
        'amount': amount,
        'tx_id': next_tx()
    })
    return handle

# -----------------------------------------------------------------------------
# Operators
# -----------------------------------------------------------------------------

@export
def set_operator(operator: str, until: datetime.datetime):
    # Setting until <= now revokes
    operators[ctx.caller, operator] = until

    OperatorSetEvent({
        'holder': ctx.caller,
        'operator': operator,
        'until': str(until),
        'tx_id': next_tx()
    })

# -----------------------------------------------------------------------------
# Transfers
# -----------------------------------------------------------------------------

def emit_transfer(from_address: str, to: str, moved: str):
    ConfidentialTransferEvent({
        'from': from_address,
        'to': to,
        'amount': moved,
        'tx_id': next_tx()
    })

@export
def confidential_transfer(to: str, amount: str, proof: dict):
    handle = fhe().verify_input(handle=amount, user=ctx.caller, proof=proof)
    moved = update(ctx.caller, to, handle)
    emit_transfer(ctx.caller, to, moved)
    return moved

@export
def confidential_transfer_from(holder: str, to: str, amount: str, proof: dict):
    require_operator(holder)
    handle = fhe().verify_input(handle=amount, user=ctx.caller, proof=proof)
    moved = update(holder, to, handle)
    emit_transfer(holder, to, moved)
    return moved

@export
def transfer_handle(to: str, amount: str):
    require_caller_allowed(amount)
    moved = update(ctx.caller, to, amount)
    emit_transfer(ctx.caller, to, moved)
    return moved

@export
def transfer_from_handle(holder: str, to: str, amount: str):
    require_operator(holder)
    require_caller_allowed(amount)
    moved = update(holder, to, amount)
    emit_transfer(holder, to, moved)
    return moved

# -----------------------------------------------------------------------------
# Disclosure
# -----------------------------------------------------------------------------

@export
def reveal_balance(viewer: str):
    balance = balances[ctx.caller]
    assert balance is not None, 'ZeroBalance: ' + ctx.caller + ' has no confidential balance'
    fhe().allow_reveal(handle=balance, viewer=viewer)
    return balance
