"""
Minimal ABI helpers for contract call data.

Call data is ``selector || abi.encode(args)`` where the selector is the first
four bytes of ``keccak256(signature)``.
"""

from __future__ import annotations

import re
from typing import Any, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

from .exceptions import VMExecutionError

_SIGNATURE_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\((.*)\)$")


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """Split ``"name(type1,type2)"`` into its name and argument types."""
    match = _SIGNATURE_RE.match(signature.replace(" ", ""))
    if not match:
        raise ValueError(f"Invalid function signature: {signature}")
    name, args = match.groups()
    return name, [t for t in args.split(",") if t]


def function_selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature.replace(" ", ""))


def encode_args(types: Sequence[str], args: Sequence[Any]) -> bytes:
    return encode(list(types), list(args))


def encode_call(signature: str, args: Sequence[Any] = ()) -> bytes:
    """
    Encode a function call.

    Args:
        signature: Canonical Solidity signature, e.g. ``"setGuardian(address)"``
        args: Positional arguments matching the signature types

    Returns:
        Selector followed by the ABI-encoded arguments
    """
    _, types = parse_signature(signature)
    if len(types) != len(args):
        raise ValueError(
            f"{signature} expects {len(types)} arguments, got {len(args)}"
        )
    return function_selector(signature) + encode_args(types, args)


def decode_call(signature: str, data: bytes) -> Tuple[Any, ...]:
    """Decode the arguments of ``data`` for ``signature``; reverts on bad input."""
    selector = function_selector(signature)
    if data[:4] != selector:
        raise VMExecutionError(f"selector mismatch for {signature}")
    _, types = parse_signature(signature)
    try:
        return tuple(decode(types, data[4:]))
    except (DecodingError, ValueError) as e:
        raise VMExecutionError(f"malformed call data for {signature}: {e}") from e
