"""Lua scripts executed with EVAL / EVALSHA, and a registry of named scripts."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from redisox.errors import ProtocolError


class ScriptClient(Protocol):
    """The client operations a script needs."""

    async def evalsha(self, sha: str, keys: list[str], args: list[str]) -> Any: ...

    async def eval(self, source: str, keys: list[str], args: list[str]) -> Any: ...

    async def script_load(self, source: str) -> str: ...


def calculate_sha1(text: str) -> str:
    """Return the lowercase hex SHA1 digest of the UTF-8 encoded text."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Script:
    """A Lua script together with the SHA1 used to call it by digest."""

    source: str
    sha: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sha", calculate_sha1(self.source))

    async def execute(
        self, client: ScriptClient, keys: Sequence[str] = (), args: Sequence[str] = ()
    ) -> Any:
        """Run the script by digest, sending the full source if the server lacks it."""
        key_list, arg_list = list(keys), list(args)
        try:
            return await client.evalsha(self.sha, key_list, arg_list)
        except ProtocolError as exc:
            if "NOSCRIPT" not in str(exc):
                raise
        return await client.eval(self.source, key_list, arg_list)

    async def load(self, client: ScriptClient) -> str:
        """Cache the script on the server with SCRIPT LOAD and return its digest."""
        return await client.script_load(self.source)


class ScriptManager:
    """A registry of named scripts."""

    def __init__(self) -> None:
        self._scripts: dict[str, Script] = {}

    def register(self, name: str, script: Script) -> None:
        """Store a script under a name, replacing any script already there."""
        self._scripts[name] = script

    def get(self, name: str) -> Script | None:
        """Return the script registered under the name, if any."""
        return self._scripts.get(name)

    async def execute(
        self,
        name: str,
        client: ScriptClient,
        keys: Sequence[str] = (),
        args: Sequence[str] = (),
    ) -> Any:
        """Run the named script; raise ProtocolError if it is not registered."""
        script = self.get(name)
        if script is None:
            raise ProtocolError(f"Script '{name}' not found")
        return await script.execute(client, keys, args)

    async def load_all(self, client: ScriptClient) -> dict[str, str]:
        """Load every registered script and map each name to its returned digest."""
        return {name: await script.load(client) for name, script in list(self._scripts.items())}

    def list_scripts(self) -> list[str]:
        """Return the names of all registered scripts."""
        return list(self._scripts)

    def remove(self, name: str) -> Script | None:
        """Remove and return the named script, or None if it was absent."""
        return self._scripts.pop(name, None)

    def clear(self) -> None:
        """Remove every registered script."""
        self._scripts.clear()

    def __len__(self) -> int:
        return len(self._scripts)

    def __contains__(self, name: object) -> bool:
        return name in self._scripts


_INCREMENT_WITH_TTL = """\
local current = redis.call('GET', KEYS[1])
local value = tonumber(ARGV[1])
if current then
  value = tonumber(current) + value
end
redis.call('SET', KEYS[1], value)
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
return value
"""

_COMPARE_AND_SET = """\
if redis.call('GET', KEYS[1]) == ARGV[1] then
  redis.call('SET', KEYS[1], ARGV[2])
  return 1
end
return 0
"""

_SLIDING_WINDOW = """\
local window = tonumber(ARGV[1])
local limit = tonumber(ARGV[2])
local now = tonumber(redis.call('TIME')[1])
redis.call('ZREMRANGEBYSCORE', KEYS[1], 0, now - window)
local used = redis.call('ZCARD', KEYS[1])
if used >= limit then
  return {0, 0}
end
redis.call('ZADD', KEYS[1], now, now)
redis.call('EXPIRE', KEYS[1], window)
return {1, limit - used - 1}
"""

_ACQUIRE_LOCK = """\
if redis.call('SET', KEYS[1], ARGV[1], 'NX', 'EX', tonumber(ARGV[2])) then
  return 1
end
return 0
"""

_RELEASE_LOCK = """\
if redis.call('GET', KEYS[1]) ~= ARGV[1] then
  return 0
end
return redis.call('DEL', KEYS[1])
"""


def atomic_increment_with_expiration() -> Script:
    """Increment KEYS[1] by ARGV[1] and give it a TTL of ARGV[2] seconds."""
    return Script(_INCREMENT_WITH_TTL)


def conditional_set() -> Script:
    """Set KEYS[1] to ARGV[2] only while it holds ARGV[1]; return 1 or 0."""
    return Script(_COMPARE_AND_SET)


def sliding_window_rate_limit() -> Script:
    """Allow ARGV[2] requests per ARGV[1]-second window on KEYS[1]."""
    return Script(_SLIDING_WINDOW)


def distributed_lock() -> Script:
    """Take lock KEYS[1] for holder ARGV[1] with a TTL of ARGV[2] seconds."""
    return Script(_ACQUIRE_LOCK)


def release_lock() -> Script:
    """Delete lock KEYS[1] only if it is held by ARGV[1]."""
    return Script(_RELEASE_LOCK)