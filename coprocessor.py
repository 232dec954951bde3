"""
Off-chain confidential-computation service.

The coprocessor is the only party that ever sees plaintexts. It

  * encrypts user inputs: mints fresh random handles, keeps their values
    in a private store and signs an input proof binding the handles to
    (executor, contract, user, nonce);
  * evaluates any derived handle by walking the symbolic operation graph
    that ``con_fhe_executor`` records on-chain.

Decryption for end users goes through ``disclosure.DecryptionService``,
which checks grants before asking the coprocessor for a value.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from nacl.signing import SigningKey

import client_helper
from exchange_errors import CiphertextUnderflow

logger = logging.getLogger(__name__)

MASK = client_helper.UINT64_MAX


@dataclass(frozen=True)
class EncryptedInput:
    handles: list
    proof: dict


class Coprocessor:
    def __init__(self, client, executor: str = "con_fhe_executor", signing_key: SigningKey | None = None):
        self.client = client
        self.executor = executor
        self.signing_key = signing_key or SigningKey.generate()
        self._values: dict[str, int] = {}

    @property
    def verify_key(self) -> str:
        return self.signing_key.verify_key.encode().hex()

    def _executor_contract(self):
        return self.client.get_contract(self.executor)

    def _next_nonce(self, user: str) -> int:
        # A proof that is never consumed leaves the on-chain nonce where it was,
        # so the next proof reuses it. Only one proof per user is usable at a time.
        return self._executor_contract().get_input_nonce(user=user) + 1

    def encrypt(self, contract: str, user: str, values) -> EncryptedInput:
        """Encrypt ``values`` for ``user`` to submit to ``contract``."""
        values = [client_helper.validate_uint64(v) for v in values]
        if not values:
            raise ValueError("nothing to encrypt")

        nonce = self._next_nonce(user)
        handles = [secrets.token_hex(32) for _ in values]
        message = client_helper.input_message(self.executor, contract, user, nonce, handles)
        signature = self.signing_key.sign(message.encode()).signature.hex()

        self._values.update(zip(handles, values))
        logger.debug("encrypted %d value(s) for %s on %s (nonce %d)", len(values), user, contract, nonce)

        return EncryptedInput(
            handles=handles,
            proof={"handles": handles, "nonce": nonce, "signature": signature},
        )

    def evaluate(self, handle: str) -> int:
        """Plaintext behind ``handle``. Callers are responsible for access checks."""
        ciphertexts = self._executor_contract().ciphertexts
        stack = [handle]

        while stack:
            current = stack[-1]
            if current in self._values:
                stack.pop()
                continue

            record = ciphertexts[current]
            if record is None or record["op"] == "input":
                raise LookupError(f"handle {current} is unknown to this coprocessor")

            pending = [arg for arg in record["args"] if arg not in self._values]
            if pending:
                stack.extend(pending)
                continue

            stack.pop()
            args = [self._values[arg] for arg in record["args"]]
            self._values[current] = self._apply(record["op"], args, record["scalars"])

        return self._values[handle]

    @staticmethod
    def _apply(op: str, args: list, scalars: list) -> int:
        if op == "trivial":
            return scalars[0]
        if op == "add":
            return (args[0] + args[1]) & MASK
        if op == "sub":
            if args[0] < args[1]:
                raise CiphertextUnderflow(f"{args[0]} - {args[1]} underflows uint64")
            return args[0] - args[1]
        if op == "scale":
            numerator, denominator = scalars
            return (args[0] * numerator // denominator) & MASK
        if op == "le":
            return int(args[0] <= args[1])
        if op == "select":
            condition, if_true, if_false = args
            return if_true if condition else if_false
        raise ValueError(f"unsupported operation {op!r}")
