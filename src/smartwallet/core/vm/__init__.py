"""Contract execution support: revert errors and ABI call data."""

from .abi import decode_call, encode_call, function_selector
from .exceptions import FailedOp, VMExecutionError

__all__ = [
    "FailedOp",
    "VMExecutionError",
    "decode_call",
    "encode_call",
    "function_selector",
]
