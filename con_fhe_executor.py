"""
FHE EXECUTOR

Encrypted 64-bit integers addressed by opaque handles.
On-chain state holds ONLY the symbolic operation graph behind each handle:
  - input handles are minted off-chain by the coprocessor and admitted
    here against a signed input proof
  - derived handles record (op, operands, public scalars)
Plaintexts never touch contract state; the coprocessor evaluates the graph.

Access control:
  - acl[handle, account]      standing right to compute on / decrypt a handle
  - reveals[handle, viewer]   disclosure grant, lifetime set by 'disclosure_ttl'
"""

# -----------------------------------------------------------------------------
# Parameters & Helpers
# -----------------------------------------------------------------------------

UINT64_MAX = 2**64 - 1

EUINT64 = 'euint64'
EBOOL = 'ebool'

def input_message(executor: str, contract: str, user: str, nonce: int, handles: list):
    # Must match client_helper.input_message byte for byte
    return "FHEIN:v1|" + executor + "|" + contract + "|" + user + "|" + str(nonce) + "|" + ",".join(handles)

def join_scalars(scalars: list):
    parts = []
    for s in scalars:
        parts.append(str(s))
    return ",".join(parts)

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# handle -> {'op': str, 'kind': str, 'args': [handle], 'scalars': [int]}
ciphertexts = Hash()

# (handle, account) -> True
acl = Hash()

# (handle, viewer) -> {'granted_by': str, 'expires': datetime | None}
reveals = Hash()

# user -> int (monotonic input nonce)
input_nonces = Hash()

metadata = Hash()

handle_counter = Variable()

# Events
InputVerifiedEvent = LogEvent('InputVerified', {
    'handle': {'type': str, 'idx': True},
    'user': {'type': str, 'idx': True},
    'contract': {'type': str, 'idx': True}
})

DisclosureGrantedEvent = LogEvent('DisclosureGranted', {
    'handle': {'type': str, 'idx': True},
    'viewer': {'type': str, 'idx': True},
    'granted_by': {'type': str, 'idx': True}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(coprocessor_key: str):
    metadata['operator'] = ctx.caller
    metadata['coprocessor_key'] = coprocessor_key

    # 0 = standing disclosure grants
    metadata['disclosure_ttl'] = 0

    handle_counter.set(0)

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_metadata():
    return {
        'operator': metadata['operator'],
        'coprocessor_key': metadata['coprocessor_key'],
        'disclosure_ttl': metadata['disclosure_ttl'],
        'handles': handle_counter.get()
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['operator'], 'Unauthorized: only operator can set metadata'
    if key == 'disclosure_ttl':
        assert isinstance(value, int) and value >= 0, 'InvalidAmount: ttl must be a non-negative int'
    metadata[key] = value

@export
def get_ciphertext(handle: str):
    return ciphertexts[handle]

@export
def get_input_nonce(user: str):
    n = input_nonces[user]
    return n if n is not None else 0

@export
def is_allowed(handle: str, account: str):
    return acl[handle, account] is True

@export
def can_decrypt(handle: str, account: str):
    if acl[handle, account] is True:
        return True
    grant = reveals[handle, account]
    if grant is None:
        return False
    if grant['expires'] is None:
        return True
    return now < grant['expires']

# -----------------------------------------------------------------------------
# Handle bookkeeping
# -----------------------------------------------------------------------------

def new_handle(op: str, kind: str, args: list, scalars: list):
    counter = handle_counter.get() + 1
    handle_counter.set(counter)

    handle = hashlib.sha3("FHE:v1|" + ctx.this + "|" + op + "|" + str(counter) + "|" + ",".join(args) + "|" + join_scalars(scalars))

    ciphertexts[handle] = {
        'op': op,
        'kind': kind,
        'args': args,
        'scalars': scalars
    }
    acl[handle, ctx.caller] = True
    return handle

def require_usable(handle: str, kind: str):
    data = ciphertexts[handle]
    assert data is not None, 'Unauthorized: unknown handle'
    assert data['kind'] == kind, 'InvalidAmount: expected ' + kind + ' handle'
    assert acl[handle, ctx.caller] is True, 'Unauthorized: ' + ctx.caller + ' may not use handle'

def bump_nonce(user: str, provided: int):
    current = input_nonces[user]
    if current is None:
        current = 0
    assert provided == current + 1, 'StaleOrReplayedProof: bad input nonce'
    input_nonces[user] = provided

# -----------------------------------------------------------------------------
# Input verification
# -----------------------------------------------------------------------------

def admit(handles: list, user: str, proof: dict):
    # The consuming contract is ctx.caller; a proof minted for another contract fails here.
    # A proof is admitted whole, in one call, against the next nonce.
    assert handles == proof['handles'], 'InvalidProof: proof must be admitted with exactly its handles'

    message = input_message(ctx.this, ctx.caller, user, proof['nonce'], handles)
    assert crypto.verify(metadata['coprocessor_key'], message, proof['signature']), 'InvalidProof: proof does not bind handle to this user and contract'

    bump_nonce(user, proof['nonce'])

    for handle in handles:
        assert ciphertexts[handle] is None, 'StaleOrReplayedProof: handle already admitted'

        ciphertexts[handle] = {
            'op': 'input',
            'kind': EUINT64,
            'args': [],
            'scalars': []
        }
        acl[handle, ctx.caller] = True

        InputVerifiedEvent({
            'handle': handle,
            'user': user,
            'contract': ctx.caller
        })
    return handles

@export
def verify_input(handle: str, user: str, proof: dict):
    return admit([handle], user, proof)[0]

@export
def verify_inputs(handles: list, user: str, proof: dict):
    return admit(handles, user, proof)

# -----------------------------------------------------------------------------
# Encrypted arithmetic
# -----------------------------------------------------------------------------

@export
def trivial(value: int):
    assert value >= 0 and value <= UINT64_MAX, 'InvalidAmount: value outside uint64'
    return new_handle('trivial', EUINT64, [], [value])

@export
def add(a: str, b: str):
    require_usable(a, EUINT64)
    require_usable(b, EUINT64)
    return new_handle('add', EUINT64, [a, b], [])

@export
def sub(a: str, b: str):
    # Only defined for a >= b; callers guard with le/select
    require_usable(a, EUINT64)
    require_usable(b, EUINT64)
    return new_handle('sub', EUINT64, [a, b], [])

@export
def scale(a: str, numerator: int, denominator: int):
    assert numerator >= 0, 'InvalidAmount: numerator must be non-negative'
    assert denominator > 0, 'InvalidAmount: denominator must be positive'
    require_usable(a, EUINT64)
    return new_handle('scale', EUINT64, [a], [numerator, denominator])

@export
def le(a: str, b: str):
    require_usable(a, EUINT64)
    require_usable(b, EUINT64)
    return new_handle('le', EBOOL, [a, b], [])

@export
def select(condition: str, if_true: str, if_false: str):
    require_usable(condition, EBOOL)
    require_usable(if_true, EUINT64)
    require_usable(if_false, EUINT64)
    return new_handle('select', EUINT64, [condition, if_true, if_false], [])

# -----------------------------------------------------------------------------
# Access control & disclosure
# -----------------------------------------------------------------------------

@export
def allow(handle: str, account: str):
    assert ciphertexts[handle] is not None, 'Unauthorized: unknown handle'
    assert acl[handle, ctx.caller] is True, 'Unauthorized: ' + ctx.caller + ' may not share handle'
    acl[handle, account] = True

@export
def allow_reveal(handle: str, viewer: str):
    assert ciphertexts[handle] is not None, 'Unauthorized: unknown handle'
    assert acl[handle, ctx.caller] is True, 'Unauthorized: ' + ctx.caller + ' may not disclose handle'

    ttl = metadata['disclosure_ttl']
    expires = None
    if ttl > 0:
        expires = now + datetime.timedelta(seconds=ttl)

    reveals[handle, viewer] = {
        'granted_by': ctx.caller,
        'expires': expires
    }

    DisclosureGrantedEvent({
        'handle': handle,
        'viewer': viewer,
        'granted_by': ctx.caller
    })
