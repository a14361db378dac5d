"""
Account Abstraction Implementation (ERC-4337 Style).

Provides smart contract wallets validated by a trusted EntryPoint:
- UserOperation: struct representing user intent, signed by the owner
- SmartAccount: owner-authenticated wallet with nonce-based replay protection
- EntryPoint: relays UserOperations, holds gas deposits, pays the bundler

Security features:
- Nonce management (advanced before signature checks)
- Signature validation bound to sender, entry point and chain id
- Prefund accounting
- Caller gating on every state-changing call
"""

from __future__ import annotations

import functools
import logging
import secrets
import time
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, List, Tuple

from eth_abi import encode
from eth_utils import keccak, to_bytes

from .. import config
from ..blockchain_exceptions import BlockchainError, ContractError
from ..crypto_utils import recover_hash_signer, recover_signer
from ..ledger import Ledger, ZERO_ADDRESS, normalize_address, same_address
from ..vm.abi import decode_call, encode_call, function_selector
from ..vm.exceptions import FailedOp, VMExecutionError

logger = logging.getLogger(__name__)


class ValidationResult(IntEnum):
    """
    Packed validation data returned by ``validate_user_op``.

    The integer values are the ERC-4337 encoding the EntryPoint relies on.
    """
    SUCCESS = 0
    SIG_VALIDATION_FAILED = 1


class Erc1271Result(Enum):
    """ERC-1271 ``isValidSignature`` return values."""
    # bytes4(keccak256("isValidSignature(bytes32,bytes)"))
    MAGIC_VALUE = bytes.fromhex("1626ba7e")
    INVALID = bytes.fromhex("ffffffff")


def abi_function(signature: str) -> Callable:
    """Expose a ``(caller, *args)`` method to ABI call data under ``signature``."""
    def decorator(func: Callable) -> Callable:
        func.__abi_signature__ = signature
        return func
    return decorator


def _hex_to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not value:
        return b""
    return to_bytes(hexstr=value)


@dataclass(frozen=True)
class UserOperation:
    """
    ERC-4337 UserOperation struct.

    Represents a user's intent to execute a call from their account. Every
    field except ``signature`` is covered by the signed digest.
    """

    sender: str = ZERO_ADDRESS
    nonce: int = 0
    init_code: bytes = b""
    call_data: bytes = b""
    call_gas_limit: int = 0
    verification_gas_limit: int = 100_000
    pre_verification_gas: int = 21_000
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 1_000_000_000
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    def pack(self) -> bytes:
        """ABI-encode the UserOp for hashing (dynamic fields hashed, no signature)."""
        return encode(
            [
                "address", "uint256", "bytes32", "bytes32",
                "uint256", "uint256", "uint256", "uint256", "uint256",
                "bytes32",
            ],
            [
                self.sender,
                self.nonce,
                keccak(self.init_code),
                keccak(self.call_data),
                self.call_gas_limit,
                self.verification_gas_limit,
                self.pre_verification_gas,
                self.max_fee_per_gas,
                self.max_priority_fee_per_gas,
                keccak(self.paymaster_and_data),
            ],
        )

    def hash(self, entry_point: str, chain_id: int) -> bytes:
        """
        Get UserOp hash for signing.

        Args:
            entry_point: EntryPoint contract address
            chain_id: Chain ID for replay protection

        Returns:
            32-byte digest the owner signs (with the personal-message prefix)
        """
        return keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [keccak(self.pack()), entry_point, chain_id],
            )
        )

    def required_prefund(self) -> int:
        """Maximum gas cost the EntryPoint may charge for this operation."""
        max_gas = self.call_gas_limit + self.verification_gas_limit + self.pre_verification_gas
        return max_gas * self.max_fee_per_gas

    def with_signature(self, signature: bytes) -> "UserOperation":
        return replace(self, signature=bytes(signature))

    def with_nonce(self, nonce: int) -> "UserOperation":
        return replace(self, nonce=nonce)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form using the Solidity field names."""
        return {
            "sender": self.sender,
            "nonce": self.nonce,
            "initCode": "0x" + self.init_code.hex(),
            "callData": "0x" + self.call_data.hex(),
            "callGasLimit": self.call_gas_limit,
            "verificationGasLimit": self.verification_gas_limit,
            "preVerificationGas": self.pre_verification_gas,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
            "paymasterAndData": "0x" + self.paymaster_and_data.hex(),
            "signature": "0x" + self.signature.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserOperation":
        """Build from the JSON form; missing fields take the defaults."""
        defaults = cls()
        return cls(
            sender=normalize_address(data.get("sender", defaults.sender)),
            nonce=int(data.get("nonce", defaults.nonce)),
            init_code=_hex_to_bytes(data.get("initCode")),
            call_data=_hex_to_bytes(data.get("callData")),
            call_gas_limit=int(data.get("callGasLimit", defaults.call_gas_limit)),
            verification_gas_limit=int(
                data.get("verificationGasLimit", defaults.verification_gas_limit)
            ),
            pre_verification_gas=int(data.get("preVerificationGas", defaults.pre_verification_gas)),
            max_fee_per_gas=int(data.get("maxFeePerGas", defaults.max_fee_per_gas)),
            max_priority_fee_per_gas=int(
                data.get("maxPriorityFeePerGas", defaults.max_priority_fee_per_gas)
            ),
            paymaster_and_data=_hex_to_bytes(data.get("paymasterAndData")),
            signature=_hex_to_bytes(data.get("signature")),
        )


@dataclass
class ExecutionResult:
    """Result of UserOp execution."""
    user_op_hash: bytes
    success: bool
    actual_gas_used: int
    actual_gas_cost: int
    return_data: Any = None


@dataclass
class SmartAccount:
    """
    Base smart account implementation.

    A single owner authenticates UserOperations with a secp256k1 signature
    over the UserOp hash. The trusted EntryPoint and the owner may call
    ``execute``; owner-only management calls also accept self-calls made
    through ``execute`` so they can ride inside a UserOperation.
    """

    address: str = ""
    owner: str = ""
    entry_point: str = config.ENTRY_POINT_ADDRESS

    # Account state
    nonce: int = 0

    ledger: Ledger = field(default_factory=Ledger, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Normalize addresses and register with the ledger."""
        if not self.address:
            addr_hash = keccak(
                f"smart_account:{self.owner}:{time.time_ns()}:{secrets.token_hex(8)}".encode()
            )
            self.address = "0x" + addr_hash[-20:].hex()
        self.address = normalize_address(self.address)
        self.owner = normalize_address(self.owner) if self.owner else ZERO_ADDRESS
        self.entry_point = normalize_address(self.entry_point)
        self.ledger.register_contract(self)

    # ==================== IAccount Interface (ERC-4337) ====================

    def validate_user_op(
        self,
        caller: str,
        user_op: UserOperation,
        user_op_hash: bytes,
        missing_account_funds: int,
    ) -> ValidationResult:
        """
        Validate a UserOperation and pay the prefund.

        Args:
            caller: Must be the trusted EntryPoint
            user_op: The UserOperation to validate
            user_op_hash: Hash of the UserOp as computed by the EntryPoint
            missing_account_funds: Amount to pay to the EntryPoint

        Returns:
            ValidationResult.SUCCESS, or SIG_VALIDATION_FAILED for a bad
            signature (never raised)

        Raises:
            VMExecutionError: ``account: not from EntryPoint`` or
                ``account: invalid nonce``
        """
        self._require_from_entry_point(caller)
        self._validate_and_update_nonce(user_op)
        result = self._validate_signature(user_op, user_op_hash)
        self._pay_prefund(missing_account_funds)
        return result

    @abi_function("execute(address,uint256,bytes)")
    def execute(self, caller: str, dest: str, value: int, data: bytes = b"") -> Any:
        """
        Execute a call from this account.

        Callable by the owner or the EntryPoint.

        Args:
            caller: msg.sender
            dest: Target address
            value: Native value to send
            data: Call data

        Returns:
            Return data from the call
        """
        self._require_from_entry_point_or_owner(caller)
        with self.ledger.atomic():
            self._before_value_transfer(value)
            result = self._call(dest, value, data)

        logger.debug(
            "Account executed call",
            extra={
                "event": "account.execute",
                "account": self.address[:10],
                "dest": dest[:10],
                "value": value,
            }
        )
        return result

    @abi_function("executeBatch(address[],bytes[])")
    def execute_batch(self, caller: str, dests: List[str], datas: List[bytes]) -> List[Any]:
        """
        Execute a sequence of zero-value calls atomically.

        Args:
            caller: msg.sender (owner or EntryPoint)
            dests: Target addresses
            datas: Call data for each target

        Returns:
            Return data from each call
        """
        self._require_from_entry_point_or_owner(caller)
        if len(dests) != len(datas):
            raise VMExecutionError("wrong array lengths")

        with self.ledger.atomic():
            return [self._call(dest, 0, data) for dest, data in zip(dests, datas)]

    # ==================== ERC-1271 ====================

    def is_valid_signature(self, hash_: bytes, signature: bytes) -> Erc1271Result:
        """
        ERC-1271 signature check against the raw hash.

        Returns:
            Erc1271Result.MAGIC_VALUE if the current owner signed ``hash_``,
            Erc1271Result.INVALID otherwise
        """
        signer = recover_hash_signer(hash_, signature)
        if same_address(signer, self.owner):
            return Erc1271Result.MAGIC_VALUE
        return Erc1271Result.INVALID

    # ==================== Deposit Management ====================

    def get_balance(self) -> int:
        return self.ledger.balance_of(self.address)

    def get_nonce(self) -> int:
        return self.nonce

    def get_deposit(self) -> int:
        """Current deposit of this account at the EntryPoint."""
        entry_point = self.ledger.get_contract(self.entry_point)
        if entry_point is None:
            return 0
        return entry_point.balance_of(self.address)

    def add_deposit(self, caller: str, amount: int) -> None:
        """Fund this account's EntryPoint deposit with ``amount`` from ``caller``."""
        with self.ledger.atomic():
            self.ledger.transfer(caller, self.address, amount)
            self._call(
                self.entry_point,
                amount,
                encode_call("depositTo(address)", [self.address]),
            )

    @abi_function("withdrawDepositTo(address,uint256)")
    def withdraw_deposit_to(self, caller: str, withdraw_address: str, amount: int) -> None:
        """Withdraw from the EntryPoint deposit (owner only)."""
        self._only_owner(caller)
        self._call(
            self.entry_point,
            0,
            encode_call("withdrawTo(address,uint256)", [withdraw_address, amount]),
        )

    # ==================== Call Data ====================

    def dispatch(self, caller: str, value: int, data: bytes) -> Any:
        """Route ABI call data to the matching ``@abi_function`` method."""
        table = _dispatch_table(type(self))
        entry = table.get(bytes(data[:4]))
        if entry is None:
            raise ContractError(
                f"Unknown function selector 0x{bytes(data[:4]).hex()} for {type(self).__name__}"
            )
        signature, method_name = entry
        args = decode_call(signature, data)
        return getattr(self, method_name)(caller, *args)

    # ==================== Internal ====================

    def _validate_and_update_nonce(self, user_op: UserOperation) -> None:
        if user_op.nonce != self.nonce:
            logger.warning(
                "UserOp rejected: nonce mismatch",
                extra={
                    "event": "account.invalid_nonce",
                    "account": self.address[:10],
                    "expected": self.nonce,
                    "got": user_op.nonce,
                }
            )
            raise VMExecutionError("account: invalid nonce")
        self.nonce += 1

    def _validate_signature(
        self,
        user_op: UserOperation,
        user_op_hash: bytes,
    ) -> ValidationResult:
        """
        Check the owner signature over the canonical UserOp digest.

        The digest is recomputed for this account's EntryPoint and the
        ledger's chain id; a mismatching sender or hash counts as a bad
        signature rather than an error.
        """
        reason = None
        if not same_address(user_op.sender, self.address):
            reason = "sender_mismatch"
        else:
            expected_hash = user_op.hash(self.entry_point, self.ledger.chain_id)
            if bytes(user_op_hash) != expected_hash:
                reason = "hash_mismatch"
            else:
                signer = recover_signer(expected_hash, user_op.signature)
                if signer is None:
                    reason = "malformed_signature"
                elif not same_address(signer, self.owner):
                    reason = "not_owner"

        if reason is not None:
            logger.warning(
                "UserOp signature validation failed",
                extra={
                    "event": "account.signature_validation_failed",
                    "account": self.address[:10],
                    "reason": reason,
                }
            )
            return ValidationResult.SIG_VALIDATION_FAILED

        logger.debug(
            "UserOp signature validation succeeded",
            extra={"event": "account.signature_validation_success", "account": self.address[:10]}
        )
        return ValidationResult.SUCCESS

    def _pay_prefund(self, missing_account_funds: int) -> None:
        """
        Send up to ``missing_account_funds`` to the EntryPoint.

        Pays what the balance allows; the EntryPoint rejects the operation
        if the deposit still falls short.
        """
        if missing_account_funds <= 0:
            return
        amount = min(self.get_balance(), missing_account_funds)
        if amount < missing_account_funds:
            logger.warning(
                "Prefund only partially paid",
                extra={
                    "event": "account.prefund_partial",
                    "account": self.address[:10],
                    "requested": missing_account_funds,
                    "paid": amount,
                }
            )
        if amount > 0:
            self.ledger.call(self.address, self.entry_point, amount)

    def _before_value_transfer(self, value: int) -> None:
        """Hook for policies that gate outgoing value; runs inside the call's atomic block."""

    def _call(self, target: str, value: int, data: bytes) -> Any:
        return self.ledger.call(self.address, target, value, data)

    def _is_owner_or_self(self, caller: str) -> bool:
        return same_address(caller, self.owner) or same_address(caller, self.address)

    def _only_owner(self, caller: str) -> None:
        if not self._is_owner_or_self(caller):
            raise VMExecutionError("only owner")

    def _require_from_entry_point(self, caller: str) -> None:
        if not same_address(caller, self.entry_point):
            raise VMExecutionError("account: not from EntryPoint")

    def _require_from_entry_point_or_owner(self, caller: str) -> None:
        if not (same_address(caller, self.entry_point) or same_address(caller, self.owner)):
            logger.warning(
                "Unauthorized execute attempt",
                extra={
                    "event": "account.unauthorized_execute",
                    "account": self.address[:10],
                    "caller": caller[:10],
                }
            )
            raise VMExecutionError("account: not Owner or EntryPoint")


@functools.lru_cache(maxsize=None)
def _dispatch_table(cls: type) -> Dict[bytes, Tuple[str, str]]:
    table: Dict[bytes, Tuple[str, str]] = {}
    for name in dir(cls):
        signature = getattr(getattr(cls, name, None), "__abi_signature__", None)
        if signature:
            table[function_selector(signature)] = (signature, name)
    return table


@dataclass
class EntryPoint:
    """
    ERC-4337 EntryPoint contract.

    The trusted execution environment that:
    - Receives UserOperations from bundlers
    - Has accounts validate signatures and pay gas up front
    - Executes operations
    - Manages account deposits

    Validation of every op in a batch happens before any execution; a
    validation failure aborts the whole batch with FailedOp.
    """

    address: str = config.ENTRY_POINT_ADDRESS

    # Deposits (for gas prepayment), keyed by lowercase account address
    deposits: Dict[str, int] = field(default_factory=dict)

    # Statistics
    total_ops_processed: int = 0
    total_gas_used: int = 0

    ledger: Ledger = field(default_factory=Ledger, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Initialize EntryPoint."""
        self.address = normalize_address(self.address)
        self.ledger.register_contract(self)

    # ==================== Main Entry Point ====================

    def handle_ops(
        self,
        ops: List[UserOperation],
        beneficiary: str,
    ) -> List[ExecutionResult]:
        """
        Handle a batch of UserOperations.

        Args:
            ops: List of UserOperations
            beneficiary: Address to receive the collected gas fees

        Returns:
            List of execution results, one per op

        Raises:
            FailedOp: If any op fails validation; nothing in the batch is applied
        """
        with self.ledger.atomic():
            validated = [self._validate_prepayment(i, op) for i, op in enumerate(ops)]

            results = []
            collected = 0
            for op, (op_hash, prefund) in zip(ops, validated):
                result = self._execute_op(op, op_hash, prefund)
                collected += result.actual_gas_cost
                results.append(result)

            self.ledger.transfer(self.address, beneficiary, collected)
            self.total_ops_processed += len(ops)

        return results

    def get_user_op_hash(self, op: UserOperation) -> bytes:
        return op.hash(self.address, self.ledger.chain_id)

    def get_nonce(self, sender: str) -> int:
        account = self.ledger.get_contract(sender)
        if isinstance(account, SmartAccount):
            return account.nonce
        return 0

    def _validate_prepayment(self, op_index: int, op: UserOperation) -> Tuple[bytes, int]:
        account = self.ledger.get_contract(op.sender)
        if not isinstance(account, SmartAccount):
            raise FailedOp(op_index, "AA20 account not deployed")

        op_hash = self.get_user_op_hash(op)
        required_prefund = op.required_prefund()
        missing_funds = max(0, required_prefund - self.balance_of(op.sender))

        try:
            result = account.validate_user_op(self.address, op, op_hash, missing_funds)
        except VMExecutionError as e:
            logger.warning(
                "UserOp validation reverted",
                extra={
                    "event": "entrypoint.validation_reverted",
                    "sender": op.sender[:10],
                    "reason": e.reason,
                }
            )
            raise FailedOp(op_index, f"AA23 reverted: {e.reason}") from e

        if result != ValidationResult.SUCCESS:
            logger.warning(
                "UserOp validation failed: invalid signature",
                extra={"event": "entrypoint.signature_failed", "sender": op.sender[:10]}
            )
            raise FailedOp(op_index, "AA24 signature error")

        key = op.sender.lower()
        if self.deposits.get(key, 0) < required_prefund:
            raise FailedOp(op_index, "AA21 didn't pay prefund")
        self.deposits[key] -= required_prefund

        return op_hash, required_prefund

    def _execute_op(self, op: UserOperation, op_hash: bytes, prefund: int) -> ExecutionResult:
        success = True
        return_data = None
        if op.call_data:
            try:
                return_data = self.ledger.call(self.address, op.sender, 0, op.call_data)
            except BlockchainError as e:
                success = False
                logger.warning(
                    "UserOp execution reverted",
                    extra={
                        "event": "entrypoint.execution_reverted",
                        "sender": op.sender[:10],
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        # Simplified gas accounting: half the call gas is assumed used
        gas_used = op.pre_verification_gas + op.verification_gas_limit + op.call_gas_limit // 2
        gas_price = min(op.max_fee_per_gas, op.max_priority_fee_per_gas)
        actual_cost = min(gas_used * gas_price, prefund)

        key = op.sender.lower()
        self.deposits[key] = self.deposits.get(key, 0) + (prefund - actual_cost)
        self.total_gas_used += gas_used

        logger.info(
            "UserOp processed",
            extra={
                "event": "entrypoint.op_processed",
                "sender": op.sender[:10],
                "nonce": op.nonce,
                "success": success,
                "gas_used": gas_used,
            }
        )
        return ExecutionResult(
            user_op_hash=op_hash,
            success=success,
            actual_gas_used=gas_used,
            actual_gas_cost=actual_cost,
            return_data=return_data,
        )

    # ==================== Deposit Management ====================

    def receive(self, caller: str, value: int) -> None:
        """Plain value transfers are deposits for the sender."""
        self._credit(caller, value)

    def deposit_to(self, caller: str, account: str, amount: int) -> None:
        """Deposit ``amount`` from ``caller`` for ``account``."""
        self.ledger.call(caller, self.address, amount, encode_call("depositTo(address)", [account]))

    def withdraw_to(self, caller: str, withdraw_address: str, amount: int) -> None:
        """Withdraw from the caller's own deposit."""
        if amount < 0:
            raise VMExecutionError("Withdraw amount invalid")
        key = caller.lower()
        current = self.deposits.get(key, 0)
        if amount > current:
            raise VMExecutionError("Withdraw amount too large")
        with self.ledger.atomic():
            self.ledger.transfer(self.address, withdraw_address, amount)
            self.deposits[key] = current - amount

    def balance_of(self, account: str) -> int:
        """Get account deposit balance."""
        return self.deposits.get(account.lower(), 0)

    def dispatch(self, caller: str, value: int, data: bytes) -> Any:
        selector = bytes(data[:4])
        if selector == function_selector("depositTo(address)"):
            (account,) = decode_call("depositTo(address)", data)
            self._credit(account, value)
            return None
        if selector == function_selector("withdrawTo(address,uint256)"):
            return self.withdraw_to(caller, *decode_call("withdrawTo(address,uint256)", data))
        raise ContractError(f"Unknown function selector 0x{selector.hex()} for EntryPoint")

    def _credit(self, account: str, value: int) -> None:
        key = account.lower()
        self.deposits[key] = self.deposits.get(key, 0) + value
        logger.debug(
            "Deposit credited",
            extra={"event": "entrypoint.deposited", "account": account[:10], "amount": value}
        )

    # ==================== Stats ====================

    def get_stats(self) -> Dict:
        """Get EntryPoint statistics."""
        return {
            "total_ops_processed": self.total_ops_processed,
            "total_gas_used": self.total_gas_used,
            "total_deposits": sum(self.deposits.values()),
        }
