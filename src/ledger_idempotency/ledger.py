"""Minimal in-memory account ledger.

The ledger is the collaborator the idempotency layer protects: it owns the
balance arithmetic and the funds checks, and knows nothing about idempotency
keys. Every mutation is serialized through one asyncio lock so a balance is
read and written without interleaving.

Examples:
    Opening an account and moving money::

        ledger = InMemoryLedger()
        account = ledger.open_account("alice", initial_balance=1000)

        result = await ledger.execute(account.id, OperationType.WITHDRAW, 100)
        assert result.new_balance == 900
"""

import asyncio
import itertools
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from ledger_idempotency.observability.logging import get_logger

logger = get_logger(__name__)


class OperationType(str, Enum):
    """Balance-changing operations supported by the ledger."""

    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class LedgerError(Exception):
    """Base class for ledger failures.

    Attributes:
        message: Human-readable error message
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnknownAccountError(LedgerError):
    """Raised when an operation names an account that does not exist."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class InsufficientFundsError(LedgerError):
    """Raised when a withdrawal exceeds the available balance."""

    def __init__(self, account_id: str, balance: int, amount: int) -> None:
        super().__init__(
            f"Insufficient funds in account {account_id}: balance {balance}, requested {amount}"
        )
        self.account_id = account_id
        self.balance = balance
        self.amount = amount


class InvalidAmountError(LedgerError):
    """Raised when an amount is zero or negative."""

    def __init__(self, amount: int) -> None:
        super().__init__(f"Amount must be positive, got {amount}")
        self.amount = amount


class Account(BaseModel):
    """A ledger account."""

    id: str
    owner: str
    balance: int = Field(ge=0)
    created_at: datetime


class LedgerResult(BaseModel):
    """Outcome of a successful balance-changing operation."""

    account_id: str
    operation: OperationType
    amount: int
    new_balance: int


class InMemoryLedger:
    """Process-local ledger keyed by account ID.

    Attributes:
        operations_executed: Number of successful deposit/withdraw calls,
            used to observe how often the ledger actually ran
    """

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()
        self.operations_executed = 0

    def open_account(self, owner: str, initial_balance: int = 0) -> Account:
        """Create an account and return it.

        Raises:
            InvalidAmountError: If initial_balance is negative
        """
        if initial_balance < 0:
            raise InvalidAmountError(initial_balance)

        account = Account(
            id=str(next(self._ids)),
            owner=owner,
            balance=initial_balance,
            created_at=datetime.now(UTC),
        )
        self._accounts[account.id] = account
        logger.info(
            "ledger.account_opened",
            account_id=account.id,
            owner=owner,
            balance=initial_balance,
        )
        return account.model_copy()

    def get_account(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise UnknownAccountError(account_id)
        return account.model_copy()

    def get_balance(self, account_id: str) -> int:
        return self.get_account(account_id).balance

    async def execute(
        self,
        account_id: str,
        operation_type: OperationType | str,
        amount: int,
    ) -> LedgerResult:
        """Apply a deposit or withdrawal.

        Args:
            account_id: Target account
            operation_type: "deposit" or "withdraw"
            amount: Positive amount to move

        Returns:
            LedgerResult with the balance after the operation

        Raises:
            InvalidAmountError: If amount is not positive
            UnknownAccountError: If the account does not exist
            InsufficientFundsError: If a withdrawal exceeds the balance
        """
        operation = OperationType(operation_type)
        if amount <= 0:
            raise InvalidAmountError(amount)

        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise UnknownAccountError(account_id)

            if operation == OperationType.DEPOSIT:
                new_balance = account.balance + amount
            else:
                if amount > account.balance:
                    logger.info(
                        "ledger.insufficient_funds",
                        account_id=account_id,
                        balance=account.balance,
                        amount=amount,
                    )
                    raise InsufficientFundsError(account_id, account.balance, amount)
                new_balance = account.balance - amount

            self._accounts[account_id] = account.model_copy(update={"balance": new_balance})
            self.operations_executed += 1

        logger.info(
            f"ledger.{operation.value}",
            account_id=account_id,
            amount=amount,
            balance=new_balance,
        )
        return LedgerResult(
            account_id=account_id,
            operation=operation,
            amount=amount,
            new_balance=new_balance,
        )
