"""
Helpers for secp256k1 signer recovery and signing.

Recovery never raises on attacker-supplied input: a malformed or
unrecoverable signature yields ``None`` so callers can tell an invalid
signature apart from a system error.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_utils import keccak, to_bytes
from eth_utils.exceptions import ValidationError as EthValidationError

logger = logging.getLogger(__name__)

_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)
_HALF_CURVE_ORDER = _CURVE_ORDER // 2

SIGNATURE_LENGTH = 65
PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n32"

PrivateKeyLike = Union[str, bytes]


def _to_private_key_bytes(private_key: PrivateKeyLike) -> bytes:
    if isinstance(private_key, str):
        return to_bytes(hexstr=private_key)
    return bytes(private_key)


def to_eth_signed_message_hash(message_hash: bytes) -> bytes:
    """Apply the personal-message prefix to a 32-byte digest."""
    return keccak(PERSONAL_MESSAGE_PREFIX + bytes(message_hash))


def split_signature(signature: bytes) -> Optional[tuple[int, int, int]]:
    """
    Split a 65-byte ``r || s || v`` signature into canonical components.

    Returns:
        ``(v, r, s)`` with ``v`` normalized to 0/1, or None when the signature
        is malformed (wrong length, r/s out of range, high-s, bad v).
    """
    if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_LENGTH:
        return None
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    if v >= 27:
        v -= 27
    if v not in (0, 1):
        return None
    if not (1 <= r < _CURVE_ORDER):
        return None
    # Reject malleable high-s signatures
    if not (1 <= s <= _HALF_CURVE_ORDER):
        return None
    return v, r, s


def recover_hash_signer(message_hash: bytes, signature: bytes) -> Optional[str]:
    """
    Recover the signer of a raw 32-byte hash.

    Args:
        message_hash: The exact hash that was signed
        signature: 65-byte ``r || s || v`` signature

    Returns:
        Checksummed signer address, or None if the signature is invalid
    """
    if not isinstance(message_hash, (bytes, bytearray)) or len(message_hash) != 32:
        return None
    components = split_signature(signature)
    if components is None:
        logger.debug(
            "Malformed signature rejected",
            extra={
                "event": "crypto.signature_malformed",
                "length": len(signature) if isinstance(signature, (bytes, bytearray)) else None,
            },
        )
        return None
    try:
        sig = keys.Signature(vrs=components)
        public_key = sig.recover_public_key_from_msg_hash(bytes(message_hash))
    except (BadSignature, EthValidationError, ValueError) as e:
        logger.debug(
            "Signature recovery failed",
            extra={"event": "crypto.recovery_failed", "error": str(e)},
        )
        return None
    return public_key.to_checksum_address()


def recover_signer(message_hash: bytes, signature: bytes) -> Optional[str]:
    """
    Recover the signer of a digest signed with the personal-message convention.

    This is what wallets produce for ``personal_sign(digest)``.
    """
    if not isinstance(message_hash, (bytes, bytearray)) or len(message_hash) != 32:
        return None
    return recover_hash_signer(to_eth_signed_message_hash(message_hash), signature)


def sign_message_hash(private_key: PrivateKeyLike, message_hash: bytes) -> bytes:
    """Sign a 32-byte digest with the personal-message prefix (wallet style)."""
    signed = Account.sign_message(
        encode_defunct(primitive=bytes(message_hash)),
        private_key=_to_private_key_bytes(private_key),
    )
    return bytes(signed.signature)


def sign_hash(private_key: PrivateKeyLike, message_hash: bytes) -> bytes:
    """Sign a raw 32-byte hash; ``v`` is encoded as 27/28."""
    sig = keys.PrivateKey(_to_private_key_bytes(private_key)).sign_msg_hash(bytes(message_hash))
    return sig.r.to_bytes(32, "big") + sig.s.to_bytes(32, "big") + bytes([sig.v + 27])


def address_from_private_key(private_key: PrivateKeyLike) -> str:
    return Account.from_key(_to_private_key_bytes(private_key)).address
