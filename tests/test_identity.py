"""Tests for bracketpool.identity — signed-request caller resolution."""

import pytest

eth_account = pytest.importorskip("eth_account", reason="eth-account not installed")

from bracketpool.config import BracketPoolConfig, WalletConfig
from bracketpool.errors import AuthenticationError, ErrorCode
from bracketpool.identity import (
    REQUEST_TTL,
    SignedRequest,
    caller_from_config,
    load_account,
    make_request,
    recover_caller,
    request_message,
    sign_request,
    verify_request,
)

# A fixed test key for deterministic tests
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe512961708279f3a3e6d8b4f8e2c7e1"


@pytest.fixture
def test_account():
    return eth_account.Account.from_key(TEST_PRIVATE_KEY)


class TestRequestMessage:
    def test_canonical_format(self):
        assert request_message("claim", 4, 9) == "bracketpool:claim:4:9"


class TestSignAndRecover:
    def test_recovers_signer(self, test_account):
        message = request_message("claim", 1, 1)
        signature = sign_request(test_account, message)
        assert len(signature) == 65
        assert recover_caller(message, signature) == test_account.address

    def test_different_message_different_signer(self, test_account):
        signature = sign_request(test_account, request_message("claim", 1, 1))
        recovered = recover_caller(request_message("claim", 2, 1), signature)
        assert recovered != test_account.address


class TestCallerFromConfig:
    def test_from_private_key(self, test_account):
        config = BracketPoolConfig(wallet=WalletConfig(private_key=TEST_PRIVATE_KEY))
        assert caller_from_config(config) == test_account.address

    def test_key_without_prefix(self, test_account):
        config = BracketPoolConfig(wallet=WalletConfig(private_key=TEST_PRIVATE_KEY[2:]))
        assert load_account(config).address == test_account.address

    def test_key_wins_over_mismatched_address(self, test_account):
        config = BracketPoolConfig(
            wallet=WalletConfig(address="0x1234", private_key=TEST_PRIVATE_KEY)
        )
        assert caller_from_config(config) == test_account.address

    def test_address_only(self):
        config = BracketPoolConfig(wallet=WalletConfig(address="0xWatcher"))
        assert caller_from_config(config) == "0xWatcher"
        assert load_account(config) is None

    def test_no_wallet(self):
        assert caller_from_config(BracketPoolConfig()) is None


class TestVerifyRequest:
    NOW = 1_700_000_000

    def test_recovers_signer(self, test_account):
        request = make_request(test_account, "start", 3, self.NOW)
        assert request.message == "bracketpool:start:3:1700000000"
        assert verify_request(request, self.NOW + 10) == test_account.address

    def test_stale_request(self, test_account):
        request = make_request(test_account, "start", 3, self.NOW)
        with pytest.raises(AuthenticationError) as exc:
            verify_request(request, self.NOW + REQUEST_TTL + 1)
        assert exc.value.code == ErrorCode.STALE_REQUEST

    def test_future_request(self, test_account):
        request = make_request(test_account, "start", 3, self.NOW + REQUEST_TTL + 1)
        with pytest.raises(AuthenticationError) as exc:
            verify_request(request, self.NOW)
        assert exc.value.code == ErrorCode.STALE_REQUEST

    def test_replayed_for_other_competition(self, test_account):
        """A signature for one competition recovers a stranger on another."""
        signed = make_request(test_account, "start", 3, self.NOW)
        forged = SignedRequest("start", 4, signed.nonce, signed.signature)
        assert verify_request(forged, self.NOW) != test_account.address

    def test_malformed_signature(self):
        request = SignedRequest("start", 3, self.NOW, b"\x00" * 10)
        with pytest.raises(AuthenticationError) as exc:
            verify_request(request, self.NOW)
        assert exc.value.code == ErrorCode.INVALID_SIGNATURE
