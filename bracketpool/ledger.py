"""
bracketpool/ledger.py - Value movement and custodial pool accounts.

Each paid competition holds entry fees in its own custodial account. The
account is derived deterministically from (owner, competition_id) and a
secret seed, so the signing key never has to be stored: it is re-derived
whenever a refund or claim needs to move funds out of the pool.

Two ledgers:
  - InMemoryLedger: balances in a dict. Tests and local dry runs.
  - Web3Ledger: native-coin balances and transfers over JSON-RPC.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from eth_account import Account
from web3 import Web3

from .errors import ErrorCode, LedgerError

logger = logging.getLogger(__name__)

DEFAULT_DENOMINATION = "MON"
DEFAULT_RPC_URL = "https://rpc.monad.xyz"
DEFAULT_CHAIN_ID = 143  # Monad mainnet

# Plain value transfer to an EOA
TRANSFER_GAS = 21_000


# ============================================================================
# Custodial accounts
# ============================================================================


@dataclass
class CustodialAccount:
    """A pool address plus the capability to sign transfers out of it."""

    address: str
    signer: Any  # eth_account LocalAccount


class CustodialAccountFactory:
    """Derives one custodial account per (owner, competition_id).

    The same seed, owner and competition id always give the same account.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Custodial seed must not be empty")
        self._secret = secret

    def derive(self, owner: str, competition_id: int) -> CustodialAccount:
        key = Web3.keccak(text=f"{self._secret}:{owner.lower()}:{competition_id}")
        signer = Account.from_key(key)
        return CustodialAccount(address=signer.address, signer=signer)


# ============================================================================
# Ledger protocol
# ============================================================================


class Ledger(Protocol):
    def balance_of(self, account: str, denomination: str) -> int: ...

    def transfer(
        self, source: CustodialAccount, to: str, amount: int, denomination: str
    ) -> None: ...

    def register_denomination(self, account: str, denomination: str) -> None: ...


# ============================================================================
# In-memory ledger
# ============================================================================


class InMemoryLedger:
    """Dict-backed balances. deposit() stands in for a user's own transfer."""

    def __init__(self):
        self._balances: dict[tuple[str, str], int] = {}
        self._registered: set[tuple[str, str]] = set()

    def register_denomination(self, account: str, denomination: str) -> None:
        key = (account, denomination)
        self._registered.add(key)
        self._balances.setdefault(key, 0)

    def balance_of(self, account: str, denomination: str) -> int:
        return self._balances.get((account, denomination), 0)

    def deposit(self, account: str, amount: int, denomination: str = DEFAULT_DENOMINATION) -> None:
        key = (account, denomination)
        self._balances[key] = self._balances.get(key, 0) + amount

    def transfer(
        self, source: CustodialAccount, to: str, amount: int, denomination: str
    ) -> None:
        src_key = (source.address, denomination)
        if src_key not in self._registered:
            raise LedgerError(
                f"{source.address} is not registered for {denomination}",
                ErrorCode.UNREGISTERED_ACCOUNT,
            )
        balance = self._balances.get(src_key, 0)
        if balance < amount:
            raise LedgerError(
                f"{source.address} holds {balance} {denomination}, needs {amount}"
            )
        self._balances[src_key] = balance - amount
        self.deposit(to, amount, denomination)


# ============================================================================
# Web3 ledger
# ============================================================================


class Web3Ledger:
    """Native-coin ledger over JSON-RPC.

    Only the chain's native coin is supported; asking for any other
    denomination is an error rather than a silent zero balance.

    A pool holds exactly its escrowed reserve, so it can't pay for its own
    gas. Before each payout the gas payer (the operator wallet) sends the
    pool the fee for one plain transfer at a fixed gas price, and the
    payout spends exactly that. The pool's balance drops by the payout
    amount and nothing else.
    """

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        chain_id: int = DEFAULT_CHAIN_ID,
        denomination: str = DEFAULT_DENOMINATION,
        gas_payer=None,
        w3=None,
    ):
        self._w3 = w3 or Web3(Web3.HTTPProvider(rpc_url))
        self._chain_id = chain_id
        self._denomination = denomination
        self._gas_payer = gas_payer  # eth_account LocalAccount

    def register_denomination(self, account: str, denomination: str) -> None:
        self._check_denomination(denomination)
        # Native coin needs no opt-in
        logger.debug(f"{account} ready to receive {denomination}")

    def balance_of(self, account: str, denomination: str) -> int:
        self._check_denomination(denomination)
        return self._w3.eth.get_balance(Web3.to_checksum_address(account))

    def transfer(
        self, source: CustodialAccount, to: str, amount: int, denomination: str
    ) -> None:
        self._check_denomination(denomination)
        if self._gas_payer is None:
            raise LedgerError(
                "No gas payer configured; set [wallet] private_key",
                ErrorCode.NO_GAS_PAYER,
            )
        gas_price = self._w3.eth.gas_price
        self._send(self._gas_payer, source.address, TRANSFER_GAS * gas_price, gas_price)
        tx_hash = self._send(source.signer, to, amount, gas_price)
        logger.info(f"Transfer {amount} {denomination} {source.address} -> {to}: {tx_hash.hex()}")

    def _send(self, signer, to: str, value: int, gas_price: int):
        """Sign, send and wait for one plain transfer. Returns the tx hash."""
        w3 = self._w3
        tx = {
            "from": signer.address,
            "to": Web3.to_checksum_address(to),
            "value": value,
            "nonce": w3.eth.get_transaction_count(signer.address),
            "gas": TRANSFER_GAS,
            "gasPrice": gas_price,
            "chainId": self._chain_id,
        }
        signed = signer.sign_transaction(tx)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)

        receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=30)
        if receipt["status"] != 1:
            raise LedgerError(f"Transfer reverted: {tx_hash.hex()}")
        return tx_hash

    def _check_denomination(self, denomination: str) -> None:
        if denomination != self._denomination:
            raise LedgerError(
                f"Only {self._denomination} is supported on this chain, got {denomination}",
                ErrorCode.UNSUPPORTED_OPERATION,
            )
