"""MULTI/EXEC transactions: queued commands, an executor protocol and results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Iterable, Protocol, Sequence, TypeVar

from redisox.errors import ProtocolError

T = TypeVar("T")


@dataclass(frozen=True)
class TransactionCommand:
    """A command queued in a transaction: its name, arguments and the keys it touches."""

    name: str
    args: tuple[str, ...] = ()
    keys: tuple[str, ...] = ()

    @property
    def key(self) -> str | None:
        """The first key the command touches, or None if it touches none."""
        return self.keys[0] if self.keys else None


class TransactionExecutor(Protocol):
    """The connection operations a transaction needs."""

    async def multi(self) -> None: ...

    async def queue_command(self, command: TransactionCommand) -> None: ...

    async def exec(self) -> list[Any]: ...

    async def discard(self) -> None: ...

    async def watch(self, keys: list[str]) -> None: ...

    async def unwatch(self) -> None: ...


def _whole_seconds(seconds: timedelta | int | float) -> int:
    if isinstance(seconds, timedelta):
        return int(seconds.total_seconds())
    return int(seconds)


class Transaction:
    """A group of commands sent between MULTI and EXEC and run atomically."""

    def __init__(self, connection: TransactionExecutor) -> None:
        self._connection = connection
        self._commands: list[TransactionCommand] = []
        self._watched_keys: list[str] = []
        self._started = False

    @property
    def watched_keys(self) -> list[str]:
        """The keys watched so far."""
        return list(self._watched_keys)

    @property
    def commands(self) -> list[TransactionCommand]:
        """The commands queued so far, in order."""
        return list(self._commands)

    async def watch(self, keys: Iterable[str]) -> None:
        """Watch keys; EXEC aborts if any of them changes first."""
        if self._started:
            raise ProtocolError("Cannot WATCH after MULTI")
        keys = list(keys)
        await self._connection.watch(list(keys))
        self._watched_keys.extend(keys)

    async def unwatch(self) -> None:
        """Forget every watched key."""
        await self._connection.unwatch()
        self._watched_keys.clear()

    def add_command(self, command: TransactionCommand) -> Transaction:
        """Queue a command and return the transaction for chaining."""
        self._commands.append(command)
        return self

    def _add(self, name: str, keys: Sequence[str], *extra: str) -> Transaction:
        keys = tuple(keys)
        return self.add_command(TransactionCommand(name, keys + extra, keys))

    def set(self, key: str, value: str) -> Transaction:
        """Queue SET key value."""
        return self._add("SET", [key], value)

    def get(self, key: str) -> Transaction:
        """Queue GET key."""
        return self._add("GET", [key])

    def delete(self, keys: Iterable[str]) -> Transaction:
        """Queue DEL for the keys."""
        return self._add("DEL", list(keys))

    def incr(self, key: str) -> Transaction:
        """Queue INCR key."""
        return self._add("INCR", [key])

    def decr(self, key: str) -> Transaction:
        """Queue DECR key."""
        return self._add("DECR", [key])

    def incr_by(self, key: str, increment: int) -> Transaction:
        """Queue INCRBY key increment."""
        return self._add("INCRBY", [key], str(increment))

    def decr_by(self, key: str, decrement: int) -> Transaction:
        """Queue DECRBY key decrement."""
        return self._add("DECRBY", [key], str(decrement))

    def exists(self, keys: Iterable[str]) -> Transaction:
        """Queue EXISTS for the keys."""
        return self._add("EXISTS", list(keys))

    def expire(self, key: str, seconds: timedelta | int | float) -> Transaction:
        """Queue EXPIRE key with the timeout in whole seconds."""
        return self._add("EXPIRE", [key], str(_whole_seconds(seconds)))

    def ttl(self, key: str) -> Transaction:
        """Queue TTL key."""
        return self._add("TTL", [key])

    def hget(self, key: str, field: str) -> Transaction:
        """Queue HGET key field."""
        return self._add("HGET", [key], field)

    def hset(self, key: str, field: str, value: str) -> Transaction:
        """Queue HSET key field value."""
        return self._add("HSET", [key], field, value)

    def clear(self) -> None:
        """Drop every queued command."""
        self._commands.clear()

    def __len__(self) -> int:
        return len(self._commands)

    async def exec(self) -> list[Any]:
        """Send MULTI, queue every command, run EXEC and return its results in order."""
        if not self._commands:
            raise ProtocolError("Transaction is empty")
        if not self._started:
            await self._connection.multi()
            self._started = True
        commands, self._commands = self._commands, []
        for command in commands:
            await self._connection.queue_command(command)
        results = await self._connection.exec()
        self._started = False
        return results

    async def discard(self) -> None:
        """Cancel the transaction and drop every queued command."""
        await self._connection.discard()
        self._commands.clear()
        self._started = False


class TransactionResult:
    """The results of an executed transaction, read in order or by index."""

    def __init__(self, results: Iterable[Any]) -> None:
        self._results = list(results)
        self._index = 0

    @staticmethod
    def _convert(value: Any, convert: Callable[[Any], T] | None) -> Any:
        return value if convert is None else convert(value)

    def next(self, convert: Callable[[Any], T] | None = None) -> Any:
        """Return the next result, passed through ``convert`` when given."""
        if self._index >= len(self._results):
            raise ProtocolError("No more results in transaction")
        value = self._results[self._index]
        self._index += 1
        return self._convert(value, convert)

    def get(self, index: int, convert: Callable[[Any], T] | None = None) -> Any:
        """Return the result at ``index``, passed through ``convert`` when given."""
        if index < 0 or index >= len(self._results):
            raise ProtocolError(f"Index {index} out of bounds")
        return self._convert(self._results[index], convert)

    def into_results(self) -> list[Any]:
        """Return all results as a list."""
        return list(self._results)

    def __len__(self) -> int:
        return len(self._results)