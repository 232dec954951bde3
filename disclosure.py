"""
User decryption: turning an encrypted handle back into a plaintext for an
authorized viewer.

Flow
----
1. The viewer creates an ephemeral X25519 keypair.
2. The viewer builds a typed ``DecryptRequest`` (ephemeral public key,
   contracts, start timestamp, duration in days) and signs its canonical
   encoding with their long-term Ed25519 wallet key. Wallet addresses are
   verify keys in hex.
3. ``DecryptionService.user_decrypt`` checks the signature, the validity
   window and the on-chain grants, then returns every plaintext sealed to
   the ephemeral public key.
4. The viewer opens each result with ``unseal``.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from contracting.stdlib.bridge.time import Datetime
from nacl.exceptions import BadSignatureError, CryptoError
from nacl.public import PrivateKey, PublicKey, SealedBox
from nacl.signing import SigningKey, VerifyKey

from exchange_errors import ExpiredAuthorization, NoGrant, SignatureMismatch
from exchange_settings import Settings, get_settings

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400
PRIMARY_TYPE = "UserDecryptRequestVerification"


def address_of(signing_key: SigningKey) -> str:
    return signing_key.verify_key.encode().hex()


@dataclass(frozen=True)
class Keypair:
    private_key: str
    public_key: str


def generate_keypair() -> Keypair:
    private_key = PrivateKey.generate()
    return Keypair(
        private_key=private_key.encode().hex(),
        public_key=private_key.public_key.encode().hex(),
    )


@dataclass(frozen=True)
class DecryptRequest:
    public_key: str
    contracts: tuple
    start: int
    duration_days: int

    @property
    def expires(self) -> int:
        return self.start + self.duration_days * SECONDS_PER_DAY

    def typed_data(self, executor: str) -> dict:
        return {
            "domain": {"name": "ConfidentialDecryption", "version": "1", "verifying_contract": executor},
            "primary_type": PRIMARY_TYPE,
            "message": {
                "public_key": self.public_key,
                "contracts": list(self.contracts),
                "start": self.start,
                "duration_days": self.duration_days,
            },
        }

    def encode(self, executor: str) -> bytes:
        return json.dumps(self.typed_data(executor), sort_keys=True, separators=(",", ":")).encode()


def create_request(keypair: Keypair, contracts, start: int | None = None, duration_days: int | None = None,
                   settings: Settings | None = None) -> DecryptRequest:
    settings = settings or get_settings()
    return DecryptRequest(
        public_key=keypair.public_key,
        contracts=tuple(contracts),
        start=int(time.time()) if start is None else start,
        duration_days=settings.decrypt_validity_days if duration_days is None else duration_days,
    )


def sign_request(request: DecryptRequest, signing_key: SigningKey, executor: str) -> str:
    return signing_key.sign(request.encode(executor)).signature.hex()


def unseal(keypair: Keypair, sealed: str) -> int:
    box = SealedBox(PrivateKey(bytes.fromhex(keypair.private_key)))
    return int(box.decrypt(bytes.fromhex(sealed)).decode())


def to_contract_time(timestamp: float) -> Datetime:
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return Datetime(moment.year, moment.month, moment.day, moment.hour, moment.minute, moment.second)


@dataclass
class DecryptionService:
    """Stand-in for the key-management side of the confidential-computation service."""

    client: object
    coprocessor: object
    settings: Settings = field(default_factory=get_settings)
    clock: object = time.time

    def _check_signature(self, request: DecryptRequest, signature: str, user: str) -> None:
        try:
            VerifyKey(bytes.fromhex(user)).verify(request.encode(self.coprocessor.executor), bytes.fromhex(signature))
        except (BadSignatureError, CryptoError, ValueError) as exc:
            raise SignatureMismatch(f"request not signed by {user}") from exc

    def _check_window(self, request: DecryptRequest, now: float) -> None:
        if request.duration_days > self.settings.decrypt_max_validity_days:
            raise ExpiredAuthorization(
                f"duration {request.duration_days}d exceeds {self.settings.decrypt_max_validity_days}d"
            )
        if not request.start <= now < request.expires:
            raise ExpiredAuthorization(f"request valid from {request.start} to {request.expires}, now {int(now)}")

    def _check_grant(self, handle: str, contract: str, request: DecryptRequest, user: str, now: float) -> None:
        if contract not in request.contracts:
            raise NoGrant(f"{contract} is not covered by the signed request")

        executor = self.client.get_contract(self.coprocessor.executor)
        environment = {"now": to_contract_time(now)}
        if not executor.is_allowed(handle=handle, account=contract, environment=environment):
            raise NoGrant(f"{contract} is not allowed on handle {handle}")
        if not executor.can_decrypt(handle=handle, account=user, environment=environment):
            raise NoGrant(f"{user} holds no disclosure grant for handle {handle}")

    def user_decrypt(self, pairs, request: DecryptRequest, signature: str, user: str) -> dict:
        """
        ``pairs`` is an iterable of ``(handle, contract)``. Returns a mapping
        handle -> plaintext sealed to ``request.public_key`` (hex).
        """
        now = self.clock()
        self._check_signature(request, signature, user)
        self._check_window(request, now)

        pairs = list(pairs)
        for handle, contract in pairs:
            self._check_grant(handle, contract, request, user, now)

        box = SealedBox(PublicKey(bytes.fromhex(request.public_key)))
        sealed = {}
        for handle, _contract in pairs:
            value = self.coprocessor.evaluate(handle)
            sealed[handle] = box.encrypt(str(value).encode()).hex()

        logger.info("released %d handle(s) to %s", len(sealed), user)
        return sealed
