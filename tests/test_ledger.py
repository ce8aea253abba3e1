"""Tests for bracketpool.ledger — custodial accounts and ledgers. No RPC calls."""

from unittest.mock import MagicMock

import pytest

from bracketpool.errors import ErrorCode, LedgerError
from bracketpool.ledger import (
    TRANSFER_GAS,
    CustodialAccount,
    CustodialAccountFactory,
    InMemoryLedger,
    Web3Ledger,
)

OWNER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
PLAYER = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"


@pytest.fixture
def factory():
    return CustodialAccountFactory("test-seed")


class TestCustodialAccountFactory:
    def test_deterministic(self, factory):
        a = factory.derive(OWNER, 1)
        b = CustodialAccountFactory("test-seed").derive(OWNER, 1)
        assert a.address == b.address
        assert a.address.startswith("0x")
        assert len(a.address) == 42

    def test_owner_case_insensitive(self, factory):
        assert factory.derive(OWNER, 1).address == factory.derive(OWNER.lower(), 1).address

    def test_distinct_per_competition(self, factory):
        assert factory.derive(OWNER, 1).address != factory.derive(OWNER, 2).address

    def test_distinct_per_owner(self, factory):
        assert factory.derive(OWNER, 1).address != factory.derive(PLAYER, 1).address

    def test_distinct_per_seed(self, factory):
        other = CustodialAccountFactory("other-seed")
        assert factory.derive(OWNER, 1).address != other.derive(OWNER, 1).address

    def test_signer_matches_address(self, factory):
        account = factory.derive(OWNER, 1)
        assert account.signer.address == account.address

    def test_empty_seed_rejected(self):
        with pytest.raises(ValueError):
            CustodialAccountFactory("")


class TestInMemoryLedger:
    def test_deposit_and_balance(self):
        ledger = InMemoryLedger()
        ledger.deposit("0xabc", 50, "MON")
        ledger.deposit("0xabc", 25, "MON")
        assert ledger.balance_of("0xabc", "MON") == 75
        assert ledger.balance_of("0xabc", "USDC") == 0

    def test_transfer(self, factory):
        ledger = InMemoryLedger()
        pool = factory.derive(OWNER, 1)
        ledger.register_denomination(pool.address, "MON")
        ledger.deposit(pool.address, 100, "MON")

        ledger.transfer(pool, PLAYER, 30, "MON")
        assert ledger.balance_of(pool.address, "MON") == 70
        assert ledger.balance_of(PLAYER, "MON") == 30

    def test_insufficient_funds(self, factory):
        ledger = InMemoryLedger()
        pool = factory.derive(OWNER, 1)
        ledger.register_denomination(pool.address, "MON")
        with pytest.raises(LedgerError) as exc:
            ledger.transfer(pool, PLAYER, 1, "MON")
        assert exc.value.code == ErrorCode.INSUFFICIENT_FUNDS

    def test_unregistered_source(self, factory):
        ledger = InMemoryLedger()
        pool = factory.derive(OWNER, 1)
        ledger.deposit(pool.address, 100, "MON")
        with pytest.raises(LedgerError) as exc:
            ledger.transfer(pool, PLAYER, 1, "MON")
        assert exc.value.code == ErrorCode.UNREGISTERED_ACCOUNT


class FakeChain:
    """Native-coin balances that burn gas * gasPrice from every sender.

    Signers record the transaction they sign; send_raw_transaction applies
    the most recently signed one.
    """

    def __init__(self, gas_price=10**9):
        self.gas_price = gas_price
        self.balances = {}
        self.sent = []
        self._signed = []

    def signer(self, address):
        chain = self

        class _Signer:
            def sign_transaction(self, tx):
                chain._signed.append(tx)
                return MagicMock(raw_transaction=b"\x02signed")

        s = _Signer()
        s.address = address
        return s

    def send_raw_transaction(self, raw):
        tx = self._signed.pop()
        cost = tx["value"] + tx["gas"] * tx["gasPrice"]
        if self.balances.get(tx["from"], 0) < cost:
            raise ValueError("insufficient funds for gas * price + value")
        self.balances[tx["from"]] -= cost
        self.balances[tx["to"]] = self.balances.get(tx["to"], 0) + tx["value"]
        self.sent.append(tx)
        tx_hash = MagicMock()
        tx_hash.hex.return_value = f"0x{len(self.sent):064x}"
        return tx_hash

    def w3(self):
        w3 = MagicMock()
        w3.eth.gas_price = self.gas_price
        w3.eth.get_balance.side_effect = lambda a: self.balances.get(a, 0)
        w3.eth.get_transaction_count.return_value = 0
        w3.eth.send_raw_transaction.side_effect = self.send_raw_transaction
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 1}
        return w3


OPERATOR = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"


class TestWeb3Ledger:
    def _mock_w3(self, status=1):
        w3 = MagicMock()
        w3.eth.get_balance.return_value = 500
        w3.eth.get_transaction_count.return_value = 7
        w3.eth.gas_price = 10**9
        tx_hash = MagicMock()
        tx_hash.hex.return_value = "0xfeed"
        w3.eth.send_raw_transaction.return_value = tx_hash
        w3.eth.wait_for_transaction_receipt.return_value = {"status": status, "blockNumber": 1}
        return w3

    def _pool_on(self, chain, factory, balance):
        pool = factory.derive(OWNER, 1)
        pool = CustodialAccount(address=pool.address, signer=chain.signer(pool.address))
        chain.balances[pool.address] = balance
        return pool

    def test_balance_of(self):
        w3 = self._mock_w3()
        ledger = Web3Ledger(chain_id=10143, w3=w3)
        assert ledger.balance_of(PLAYER.lower(), "MON") == 500
        w3.eth.get_balance.assert_called_once_with(PLAYER)

    def test_transfer_signs_and_sends(self, factory):
        w3 = self._mock_w3()
        payer = CustodialAccountFactory("operator").derive(OWNER, 0).signer
        ledger = Web3Ledger(chain_id=10143, gas_payer=payer, w3=w3)
        pool = factory.derive(OWNER, 1)

        ledger.transfer(pool, PLAYER, 1234, "MON")

        # Gas top-up from the operator, then the payout from the pool
        assert w3.eth.send_raw_transaction.call_count == 2
        senders = [c.args[0] for c in w3.eth.get_transaction_count.call_args_list]
        assert senders == [payer.address, pool.address]

    def test_pool_balance_tracks_reserve(self, factory):
        """Two claims drain a 200 reserve exactly; gas never comes out of the pool."""
        chain = FakeChain()
        operator = chain.signer(OPERATOR)
        chain.balances[OPERATOR] = 10**18
        pool = self._pool_on(chain, factory, 200)
        ledger = Web3Ledger(gas_payer=operator, w3=chain.w3())

        ledger.transfer(pool, PLAYER, 160, "MON")
        assert ledger.balance_of(pool.address, "MON") == 40

        ledger.transfer(pool, OWNER, 40, "MON")
        assert ledger.balance_of(pool.address, "MON") == 0
        assert chain.balances[PLAYER] == 160
        assert chain.balances[OWNER] == 40
        assert chain.balances[OPERATOR] == 10**18 - 4 * TRANSFER_GAS * chain.gas_price

    def test_refund_leaves_balance_equal_to_reserve(self, factory):
        chain = FakeChain()
        operator = chain.signer(OPERATOR)
        chain.balances[OPERATOR] = 10**18
        pool = self._pool_on(chain, factory, 200)
        ledger = Web3Ledger(gas_payer=operator, w3=chain.w3())

        ledger.transfer(pool, PLAYER, 100, "MON")
        # Next registration expects balance == reserve + fee == 200
        chain.balances[pool.address] += 100
        assert ledger.balance_of(pool.address, "MON") == 200

    def test_transfer_without_gas_payer(self, factory):
        w3 = self._mock_w3()
        ledger = Web3Ledger(w3=w3)
        with pytest.raises(LedgerError) as exc:
            ledger.transfer(factory.derive(OWNER, 1), PLAYER, 1, "MON")
        assert exc.value.code == ErrorCode.NO_GAS_PAYER
        w3.eth.send_raw_transaction.assert_not_called()

    def test_reverted_transfer_raises(self, factory):
        payer = CustodialAccountFactory("operator").derive(OWNER, 0).signer
        ledger = Web3Ledger(gas_payer=payer, w3=self._mock_w3(status=0))
        with pytest.raises(LedgerError):
            ledger.transfer(factory.derive(OWNER, 1), PLAYER, 1, "MON")

    def test_other_denomination_rejected(self):
        ledger = Web3Ledger(w3=self._mock_w3())
        with pytest.raises(LedgerError) as exc:
            ledger.balance_of(PLAYER, "USDC")
        assert exc.value.code == ErrorCode.UNSUPPORTED_OPERATION

    def test_register_is_noop_for_native_coin(self):
        w3 = self._mock_w3()
        ledger = Web3Ledger(w3=w3)
        ledger.register_denomination(PLAYER, "MON")
        w3.eth.send_raw_transaction.assert_not_called()

    def test_gas_is_plain_transfer(self):
        assert TRANSFER_GAS == 21_000
