from datetime import timedelta

import pytest

from redisox.errors import ProtocolError, ResponseTypeError
from redisox.transaction import Transaction, TransactionCommand, TransactionResult
from redisox.values import as_int, as_text


class MockExecutor:
    def __init__(self):
        self.commands = []
        self.multi_called = False
        self.exec_called = False
        self.watched = []
        self.unwatched = False

    async def multi(self):
        self.multi_called = True

    async def queue_command(self, command):
        self.commands.append(command)

    async def exec(self):
        self.exec_called = True
        return ["OK" for _ in self.commands]

    async def discard(self):
        self.commands.clear()
        self.multi_called = False

    async def watch(self, keys):
        self.watched.extend(keys)

    async def unwatch(self):
        self.unwatched = True


@pytest.fixture
def executor():
    return MockExecutor()


def test_transaction_creation(executor):
    transaction = Transaction(executor)
    assert len(transaction) == 0
    assert not transaction


def test_transaction_add_commands(executor):
    transaction = Transaction(executor)
    transaction.set("key1", "value1")
    transaction.get("key1")
    assert len(transaction) == 2
    assert transaction


def test_command_shapes(executor):
    transaction = Transaction(executor)
    (
        transaction.set("k", "v")
        .incr_by("c", 5)
        .decr_by("c", 2)
        .expire("k", timedelta(seconds=10))
        .hset("h", "f", "x")
        .delete([])
    )
    commands = transaction.commands
    assert commands[0] == TransactionCommand("SET", ("k", "v"), ("k",))
    assert commands[1].args == ("c", "5")
    assert commands[2].name == "DECRBY"
    assert commands[3].args == ("k", "10")
    assert commands[4].args == ("h", "f", "x")
    assert commands[4].key == "h"
    assert commands[5].key is None


@pytest.mark.asyncio
async def test_transaction_exec(executor):
    transaction = Transaction(executor)
    transaction.set("key1", "value1")
    transaction.get("key1")
    results = await transaction.exec()
    assert len(results) == 2
    assert len(transaction) == 0
    assert executor.multi_called and executor.exec_called
    assert [c.name for c in executor.commands] == ["SET", "GET"]


@pytest.mark.asyncio
async def test_exec_empty_raises(executor):
    transaction = Transaction(executor)
    with pytest.raises(ProtocolError, match="Transaction is empty"):
        await transaction.exec()
    assert not executor.multi_called


@pytest.mark.asyncio
async def test_transaction_discard(executor):
    transaction = Transaction(executor)
    transaction.set("key1", "value1")
    transaction.get("key1")
    assert len(transaction) == 2
    await transaction.discard()
    assert len(transaction) == 0


@pytest.mark.asyncio
async def test_watch_and_unwatch(executor):
    transaction = Transaction(executor)
    await transaction.watch(["balance", "account"])
    assert executor.watched == ["balance", "account"]
    assert transaction.watched_keys == ["balance", "account"]
    await transaction.unwatch()
    assert executor.unwatched
    assert transaction.watched_keys == []


def test_transaction_result():
    result = TransactionResult(["OK", b"value1", 42])
    assert len(result) == 3
    assert result.next(as_text) == "OK"
    assert result.get(1, as_text) == "value1"
    assert result.get(2, as_int) == 42


def test_transaction_result_exhausted():
    result = TransactionResult(["OK"])
    assert result.next() == "OK"
    with pytest.raises(ProtocolError, match="No more results"):
        result.next()


def test_transaction_result_out_of_bounds():
    result = TransactionResult(["OK"])
    with pytest.raises(ProtocolError, match="Index 5 out of bounds"):
        result.get(5)
    with pytest.raises(ProtocolError):
        result.get(-1)


def test_transaction_result_conversion_error():
    result = TransactionResult([[1, 2]])
    with pytest.raises(ResponseTypeError):
        result.next(as_text)


def test_into_results():
    assert TransactionResult(["a", 1]).into_results() == ["a", 1]
    assert len(TransactionResult([])) == 0