"""
Unit tests for transactions and their Solr synchronization.
"""

import asyncio

import pytest

from solr_repository.transaction import (
    Transaction,
    TransactionManager,
    TransactionStatus,
    TransactionSynchronization,
)


class RecordingSynchronization(TransactionSynchronization):
    def __init__(self, events):
        self.events = events

    def before_commit(self):
        self.events.append("before_commit")

    def after_commit(self):
        self.events.append("after_commit")

    def after_rollback(self):
        self.events.append("after_rollback")


class TestTransaction:
    """Test cases for a single transaction."""

    def test_commit_runs_synchronizations_in_order(self):
        events = []
        transaction = Transaction()
        transaction.register_synchronization(RecordingSynchronization(events))

        transaction.commit()

        assert events == ["before_commit", "after_commit"]
        assert transaction.status == TransactionStatus.COMMITTED
        assert not transaction.is_active

    def test_rollback(self):
        events = []
        transaction = Transaction()
        transaction.register_synchronization(RecordingSynchronization(events))

        transaction.rollback()

        assert events == ["after_rollback"]
        assert transaction.status == TransactionStatus.ROLLED_BACK

    def test_cannot_complete_twice(self):
        transaction = Transaction()
        transaction.commit()

        with pytest.raises(RuntimeError):
            transaction.commit()
        with pytest.raises(RuntimeError):
            transaction.rollback()

    def test_cannot_register_on_completed_transaction(self):
        transaction = Transaction()
        transaction.rollback()

        with pytest.raises(RuntimeError):
            transaction.register_synchronization(TransactionSynchronization())

    def test_solr_synchronization_is_registered_once_per_operations(self, operations, make_operations):
        other = make_operations()
        transaction = Transaction()

        transaction.register_solr_synchronization(operations)
        transaction.register_solr_synchronization(operations)
        transaction.register_solr_synchronization(other)
        transaction.commit()

        assert len(transaction.synchronizations) == 2
        assert operations.calls == ["commit"]
        assert other.calls == ["commit"]

    def test_context_manager_commits(self, operations):
        with Transaction() as transaction:
            transaction.register_solr_synchronization(operations)

        assert operations.calls == ["commit"]

    def test_context_manager_rolls_back_on_error(self, operations):
        with pytest.raises(ValueError):
            with Transaction() as transaction:
                transaction.register_solr_synchronization(operations)
                raise ValueError("boom")

        assert operations.calls == ["rollback"]


class TestTransactionManager:
    """Test cases for the per-context current transaction."""

    def test_current_inside_and_outside(self):
        manager = TransactionManager()
        assert manager.current() is None

        with manager.transaction() as transaction:
            assert manager.current() is transaction

        assert manager.current() is None
        assert transaction.status == TransactionStatus.COMMITTED

    def test_nested_transaction_is_rejected(self):
        manager = TransactionManager()

        with manager.transaction():
            with pytest.raises(RuntimeError):
                with manager.transaction():
                    pass

    def test_managers_are_independent(self):
        first, second = TransactionManager("first"), TransactionManager("second")

        with first.transaction():
            assert second.current() is None

    def test_completed_transaction_is_not_current(self):
        manager = TransactionManager()

        with manager.transaction() as transaction:
            transaction.commit()
            assert manager.current() is None

    async def test_concurrent_tasks_do_not_share_transactions(self):
        manager = TransactionManager()
        seen = {}

        async def worker(name):
            with manager.transaction() as transaction:
                await asyncio.sleep(0)
                seen[name] = manager.current() is transaction

        await asyncio.gather(worker("a"), worker("b"))

        assert seen == {"a": True, "b": True}
