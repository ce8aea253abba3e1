"""
bracketpool/identity.py - Resolve "who is calling" from a signed request.

A caller proves control of an address by signing a short canonical message
describing the operation (EIP-191 personal_sign). The nonce is the signing
time in epoch seconds; requests older or newer than REQUEST_TTL are
rejected. The router only ever sees the recovered address.
"""

import logging
from dataclasses import dataclass

from eth_account import Account
from eth_account.messages import encode_defunct

from .errors import AuthenticationError, ErrorCode

logger = logging.getLogger(__name__)

MESSAGE_PREFIX = "bracketpool"
REQUEST_TTL = 300


@dataclass
class SignedRequest:
    action: str
    competition_id: int
    nonce: int
    signature: bytes

    @property
    def message(self) -> str:
        return request_message(self.action, self.competition_id, self.nonce)


def request_message(action: str, competition_id: int, nonce: int) -> str:
    """Canonical text a caller signs for one operation."""
    return f"{MESSAGE_PREFIX}:{action}:{competition_id}:{nonce}"


def sign_request(account, message: str) -> bytes:
    """Sign a request message with an eth_account LocalAccount."""
    signed = account.sign_message(encode_defunct(text=message))
    return bytes(signed.signature)


def make_request(account, action: str, competition_id: int, nonce: int) -> SignedRequest:
    message = request_message(action, competition_id, nonce)
    return SignedRequest(action, competition_id, nonce, sign_request(account, message))


def recover_caller(message: str, signature: bytes) -> str:
    """Checksummed address that produced the signature."""
    return Account.recover_message(encode_defunct(text=message), signature=signature)


def verify_request(request: SignedRequest, now: int, ttl: int = REQUEST_TTL) -> str:
    """Address that signed the request.

    Raises:
        AuthenticationError: nonce outside the freshness window (STALE_REQUEST)
            or a signature that doesn't recover (INVALID_SIGNATURE).
    """
    if abs(now - request.nonce) > ttl:
        raise AuthenticationError(
            f"Request {request.action!r} signed at {request.nonce} is stale (now={now})",
            ErrorCode.STALE_REQUEST,
        )
    try:
        caller = recover_caller(request.message, request.signature)
    except Exception as e:
        raise AuthenticationError(f"Bad signature on {request.action!r}: {e}") from e
    logger.debug(f"{request.action} on {request.competition_id} signed by {caller}")
    return caller


def load_account(config):
    """LocalAccount from a config's wallet section, or None if there's no key."""
    if config.wallet is None or config.wallet.private_key is None:
        return None

    key = config.wallet.private_key
    if not key.startswith("0x"):
        key = "0x" + key
    return Account.from_key(key)


def caller_from_config(config) -> str | None:
    """The configured wallet address, deriving it from the key if needed."""
    if config.wallet is None:
        return None
    account = load_account(config)
    if account is not None:
        if config.wallet.address and config.wallet.address.lower() != account.address.lower():
            logger.warning(
                f"Configured address {config.wallet.address} does not match "
                f"private key ({account.address}); using the key's address"
            )
        return account.address
    return config.wallet.address
