"""
ConfidentialExchange: the single serialization point in front of the
contracts.

Every state-changing call goes through one lock so at most one mutation
of the pool is in flight, whatever the number of caller threads. Reads
that feed a disclosure take the same lock. Contract assertion failures come back as typed ``exchange_errors`` exceptions.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from contracting.stdlib.bridge.time import Datetime

import client_helper
from coprocessor import Coprocessor
from disclosure import DecryptionService, address_of, create_request, generate_keypair, sign_request, unseal
from exchange_errors import translate
from exchange_settings import Settings, get_settings

logger = logging.getLogger(__name__)

CONTRACT_DIR = Path(__file__).resolve().parent

# Same horizon the seeding flow uses for operator grants (2**32 seconds)
OPERATOR_HORIZON = Datetime(2106, 2, 7, 6, 28, 16)

SEED_MINT = 100_000


def contract_source(name: str) -> str:
    return (CONTRACT_DIR / f"{name}.py").read_text()


class ConfidentialExchange:
    def __init__(self, client, coprocessor: Coprocessor, settings: Settings | None = None):
        self.client = client
        self.coprocessor = coprocessor
        self.settings = settings or get_settings()
        self.decryption = DecryptionService(client, coprocessor, self.settings)
        self._lock = threading.RLock()

    @classmethod
    def deploy(cls, client, coprocessor: Coprocessor | None = None, settings: Settings | None = None):
        """Submit executor, both tokens and the pool; the client's signer becomes operator."""
        settings = settings or get_settings()
        coprocessor = coprocessor or Coprocessor(client, executor=settings.executor_contract)

        client.submit(
            contract_source("con_fhe_executor"),
            name=settings.executor_contract,
            owner=None,
            constructor_args={"coprocessor_key": coprocessor.verify_key},
        )
        token_code = contract_source("con_confidential_token")
        for name, symbol in ((settings.usdc_contract, "fUSDC"), (settings.zama_contract, "fZama")):
            client.submit(
                token_code,
                name=name,
                owner=None,
                constructor_args={"name": f"Confidential {symbol}", "symbol": symbol,
                                  "executor": settings.executor_contract},
            )
        client.submit(
            contract_source("con_fhe_swap"),
            name=settings.swap_contract,
            owner=None,
            constructor_args={"usdc": settings.usdc_contract, "zama": settings.zama_contract,
                              "executor": settings.executor_contract},
        )

        exchange = cls(client, coprocessor, settings)
        if settings.disclosure_ttl_seconds:
            exchange.call(settings.executor_contract, "change_metadata", client.signer,
                          key="disclosure_ttl", value=settings.disclosure_ttl_seconds)
        if settings.reserve_disclosure != "open":
            exchange.call(settings.swap_contract, "change_metadata", client.signer,
                          key="reserve_disclosure", value=settings.reserve_disclosure)

        logger.info("deployed exchange %s (%s/%s)", settings.swap_contract,
                    settings.usdc_contract, settings.zama_contract)
        return exchange

    # ---- plumbing ----------------------------------------------------------

    def contract(self, name: str):
        return self.client.get_contract(name)

    def token_name(self, asset: str) -> str:
        if asset == "usdc":
            return self.settings.usdc_contract
        if asset == "zama":
            return self.settings.zama_contract
        raise ValueError(f"unknown asset {asset!r}")

    def call(self, contract: str, function: str, signer: str, **kwargs):
        with self._lock:
            try:
                return getattr(self.contract(contract), function)(signer=signer, **kwargs)
            except AssertionError as exc:
                logger.info("%s.%s rejected for %s: %s", contract, function, signer, exc)
                raise translate(exc) from exc

    def submit(self, contract: str, function: str, signer: str, values, build, *args):
        """Encrypt ``values`` for ``contract`` and call it, all under the lock so nonces stay in order."""
        with self._lock:
            encrypted = self.coprocessor.encrypt(contract, signer, values)
            return self.call(contract, function, signer, **build(encrypted, *args))

    # ---- ledger ------------------------------------------------------------

    def mint(self, asset: str, account: str, amount: int, signer: str | None = None):
        return self.call(self.token_name(asset), "mint", signer or account, to=account, amount=amount)

    def set_operator(self, asset: str, holder: str, operator: str, until: Datetime):
        return self.call(self.token_name(asset), "set_operator", holder, operator=operator, until=until)

    def authorize(self, account: str, until: Datetime = OPERATOR_HORIZON):
        """Make the pool an operator of ``account`` on both tokens."""
        for asset in ("usdc", "zama"):
            self.set_operator(asset, account, self.settings.swap_contract, until)

    def transfer(self, asset: str, sender: str, to: str, amount: int):
        return self.submit(self.token_name(asset), "confidential_transfer", sender, [amount],
                           client_helper.build_confidential_transfer, to)

    def balance_handle(self, asset: str, account: str):
        with self._lock:
            return self.contract(self.token_name(asset)).confidential_balance_of(account=account)

    # ---- pool --------------------------------------------------------------

    def add_liquidity(self, account: str, usdc: int, zama: int):
        return self.submit(self.settings.swap_contract, "add_liquidity", account, [usdc, zama],
                           client_helper.build_add_liquidity)

    def swap_usdc_for_zama(self, account: str, usdc_in: int):
        return self.submit(self.settings.swap_contract, "swap_usdc_for_zama", account, [usdc_in],
                           client_helper.build_swap)

    def swap_zama_for_usdc(self, account: str, zama_in: int):
        return self.submit(self.settings.swap_contract, "swap_zama_for_usdc", account, [zama_in],
                           client_helper.build_swap)

    def reserve_handles(self):
        with self._lock:
            return self.contract(self.settings.swap_contract).get_reserves()

    def allow_reserves(self, viewer: str, signer: str | None = None):
        return self.call(self.settings.swap_contract, "allow_reserves", signer or viewer, viewer=viewer)

    def seed(self, wallet: str, usdc: int = 2_000, zama: int = 1_000):
        if usdc != zama * client_helper.ZAMA_PRICE:
            raise ValueError(f"expected usdc == {client_helper.ZAMA_PRICE} * zama (got usdc={usdc} zama={zama})")
        self.mint("usdc", wallet, SEED_MINT)
        self.mint("zama", wallet, SEED_MINT)
        self.authorize(wallet)
        self.add_liquidity(wallet, usdc, zama)
        logger.info("seeded %s with usdc=%d zama=%d", self.settings.swap_contract, usdc, zama)

    # ---- disclosure --------------------------------------------------------

    def reveal(self, signing_key, pairs, duration_days: int | None = None) -> dict:
        """Run the full user-decryption flow for ``(handle, contract)`` pairs."""
        pairs = list(pairs)
        keypair = generate_keypair()
        contracts = sorted({contract for _, contract in pairs})
        request = create_request(keypair, contracts, start=int(self.decryption.clock()),
                                 duration_days=duration_days, settings=self.settings)
        signature = sign_request(request, signing_key, self.coprocessor.executor)
        with self._lock:
            sealed = self.decryption.user_decrypt(pairs, request, signature, address_of(signing_key))
        return {handle: unseal(keypair, box) for handle, box in sealed.items()}

    def reveal_balance(self, signing_key, asset: str) -> int:
        token = self.token_name(asset)
        with self._lock:
            handle = self.balance_handle(asset, address_of(signing_key))
            return self.reveal(signing_key, [(handle, token)])[handle]

    def reveal_reserves(self, signing_key):
        viewer = address_of(signing_key)
        swap = self.settings.swap_contract
        # Grant and read together; a swap in between would replace both handles
        with self._lock:
            self.allow_reserves(viewer)
            usdc, zama = self.reserve_handles()
            values = self.reveal(signing_key, [(usdc, swap), (zama, swap)])
        return values[usdc], values[zama]

    def preview_usdc_for_zama(self, signing_key, usdc_in: int) -> int:
        _, zama_reserve = self.reveal_reserves(signing_key)
        return client_helper.ensure_reserve_covers(client_helper.quote_usdc_for_zama(usdc_in), zama_reserve)

    def preview_zama_for_usdc(self, signing_key, zama_in: int) -> int:
        usdc_reserve, _ = self.reveal_reserves(signing_key)
        return client_helper.ensure_reserve_covers(client_helper.quote_zama_for_usdc(zama_in), usdc_reserve)
