"""
Explicit transaction context for Solr writes.

Solr has no transactions of its own; a Transaction only collects
synchronizations that run when the caller commits or rolls back. The delete
execution path and the CRUD repository register a SolrTransactionSynchronization
instead of committing immediately whenever a transaction is active.
"""

import contextvars
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, List, Optional

logger = logging.getLogger(__name__)


class TransactionStatus(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionSynchronization:
    """Callbacks invoked around transaction completion."""

    def before_commit(self) -> None:
        pass

    def after_commit(self) -> None:
        pass

    def after_rollback(self) -> None:
        pass


class SolrTransactionSynchronization(TransactionSynchronization):
    """Commits or rolls back a Solr core when the surrounding transaction completes."""

    def __init__(self, operations: Any):
        self.operations = operations

    def after_commit(self) -> None:
        logger.debug("Transaction committed, committing Solr changes")
        self.operations.commit()

    def after_rollback(self) -> None:
        logger.debug("Transaction rolled back, rolling back Solr changes")
        self.operations.rollback()


class Transaction:
    """A unit of work that defers Solr commits until it completes."""

    def __init__(self) -> None:
        self.status = TransactionStatus.ACTIVE
        self._synchronizations: List[TransactionSynchronization] = []

    @property
    def is_active(self) -> bool:
        return self.status == TransactionStatus.ACTIVE

    @property
    def synchronizations(self) -> List[TransactionSynchronization]:
        return list(self._synchronizations)

    def register_synchronization(self, synchronization: TransactionSynchronization) -> None:
        if not self.is_active:
            raise RuntimeError("Cannot register synchronization on a completed transaction")
        self._synchronizations.append(synchronization)

    def register_solr_synchronization(self, operations: Any) -> None:
        """Register a Solr synchronization once per operations instance."""
        for synchronization in self._synchronizations:
            if (
                isinstance(synchronization, SolrTransactionSynchronization)
                and synchronization.operations is operations
            ):
                return
        self.register_synchronization(SolrTransactionSynchronization(operations))

    def commit(self) -> None:
        if not self.is_active:
            raise RuntimeError(f"Transaction already {self.status.value}")
        for synchronization in self._synchronizations:
            synchronization.before_commit()
        self.status = TransactionStatus.COMMITTED
        for synchronization in self._synchronizations:
            synchronization.after_commit()

    def rollback(self) -> None:
        if not self.is_active:
            raise RuntimeError(f"Transaction already {self.status.value}")
        self.status = TransactionStatus.ROLLED_BACK
        for synchronization in self._synchronizations:
            synchronization.after_rollback()

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if not self.is_active:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class TransactionManager:
    """
    Tracks the transaction bound to the current execution context.

    Each manager owns its own context variable, so separate managers never
    see each other's transactions and concurrent callers never share one.
    """

    def __init__(self, name: str = "solr"):
        self._current: contextvars.ContextVar[Optional[Transaction]] = contextvars.ContextVar(
            f"{name}_transaction", default=None
        )

    def current(self) -> Optional[Transaction]:
        """Return the active transaction of this context, if any."""
        transaction = self._current.get()
        if transaction is not None and transaction.is_active:
            return transaction
        return None

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run a block inside a transaction.

        The transaction commits when the block exits normally and rolls back
        when it raises.
        """
        if self.current() is not None:
            raise RuntimeError("A transaction is already active in this context")

        transaction = Transaction()
        token = self._current.set(transaction)
        try:
            with transaction:
                yield transaction
        finally:
            self._current.reset(token)
