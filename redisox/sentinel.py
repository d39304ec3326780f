"""Sentinel configuration, master discovery and failover monitoring."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Protocol

from redisox.errors import ConfigError, RedisConnectionError, RedisError, SentinelError
from redisox.values import as_text, pairs

logger = logging.getLogger(__name__)


class SentinelConnection(Protocol):
    """The connection operations the sentinel client needs."""

    async def command(self, *args: str) -> Any: ...

    async def close(self) -> None: ...


Connector = Callable[[str, int], Awaitable[SentinelConnection]]

_CONNECT_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def _parse_unsigned(text: str, bits: int) -> int | None:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not digits.isascii() or not digits.isdigit():
        return None
    number = int(digits)
    return number if number < 2**bits else None


@dataclass(frozen=True)
class SentinelEndpoint:
    """Host and port of one sentinel."""

    host: str
    port: int

    @classmethod
    def from_address(cls, addr: str) -> SentinelEndpoint:
        """Parse a ``host:port`` string; raise ConfigError if it is malformed."""
        parts = addr.split(":")
        if len(parts) != 2:
            raise ConfigError(f"Invalid sentinel address: {addr}")
        port = _parse_unsigned(parts[1], 16)
        if port is None:
            raise ConfigError(f"Invalid port in sentinel address: {addr}")
        return cls(parts[0], port)

    def address(self) -> str:
        """The endpoint as ``host:port``."""
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class SentinelConfig:
    """Which master to follow, which sentinels to ask and how often."""

    master_name: str
    sentinels: tuple[SentinelEndpoint, ...] = ()
    password: str | None = None
    failover_timeout: timedelta = timedelta(seconds=30)
    check_interval: timedelta = timedelta(seconds=5)
    max_retries: int = 3

    def add_sentinel(self, addr: str) -> SentinelConfig:
        """Return a copy with the sentinel added; a malformed address is ignored."""
        try:
            endpoint = SentinelEndpoint.from_address(addr)
        except ConfigError:
            return self
        return dataclasses.replace(self, sentinels=(*self.sentinels, endpoint))

    def with_password(self, password: str) -> SentinelConfig:
        """Return a copy that authenticates to sentinels with the password."""
        return dataclasses.replace(self, password=password)

    def with_failover_timeout(self, timeout: timedelta) -> SentinelConfig:
        """Return a copy with the given failover timeout."""
        return dataclasses.replace(self, failover_timeout=timeout)

    def with_check_interval(self, interval: timedelta) -> SentinelConfig:
        """Return a copy with the given master check interval."""
        return dataclasses.replace(self, check_interval=interval)

    def with_max_retries(self, retries: int) -> SentinelConfig:
        """Return a copy with the given maximum number of failover retries."""
        return dataclasses.replace(self, max_retries=retries)


@dataclass
class MasterInfo:
    """A master as reported by SENTINEL MASTERS."""

    name: str
    host: str
    port: int
    flags: list[str] = field(default_factory=list)
    num_slaves: int = 0
    num_other_sentinels: int = 0
    quorum: int = 1
    failover_timeout: timedelta = timedelta(seconds=60)
    parallel_syncs: int = 1

    def is_down(self) -> bool:
        """Tell whether the master is subjectively or objectively down."""
        return "s_down" in self.flags or "o_down" in self.flags

    def is_failover_in_progress(self) -> bool:
        """Tell whether a failover is under way."""
        return "failover_in_progress" in self.flags

    def address(self) -> str:
        """The master as ``host:port``."""
        return f"{self.host}:{self.port}"


def _number(info: dict[str, str], key: str, bits: int, default: int) -> int:
    text = info.get(key)
    if text is None:
        return default
    value = _parse_unsigned(text, bits)
    return default if value is None else value


def parse_single_master(master_data: list[Any]) -> MasterInfo:
    """Parse one flat ``[key, value, ...]`` master description."""
    info = {as_text(key): as_text(value) for key, value in pairs(master_data)}

    if "name" not in info:
        raise SentinelError("Missing master name")
    if "ip" not in info:
        raise SentinelError("Missing master IP")
    if "port" not in info:
        raise SentinelError("Missing master port")
    port = _parse_unsigned(info["port"], 16)
    if port is None:
        raise SentinelError("Invalid master port")

    flags = info["flags"].split(",") if "flags" in info else []
    timeout_ms = _parse_unsigned(info.get("failover-timeout", ""), 64)
    failover_timeout = (
        timedelta(seconds=60) if timeout_ms is None else timedelta(milliseconds=timeout_ms)
    )

    return MasterInfo(
        name=info["name"],
        host=info["ip"],
        port=port,
        flags=flags,
        num_slaves=_number(info, "num-slaves", 32, 0),
        num_other_sentinels=_number(info, "num-other-sentinels", 32, 0),
        quorum=_number(info, "quorum", 32, 1),
        failover_timeout=failover_timeout,
        parallel_syncs=_number(info, "parallel-syncs", 32, 1),
    )


def parse_master_info(response: Any, master_name: str) -> MasterInfo:
    """Find the named master in a SENTINEL MASTERS reply."""
    if not isinstance(response, list):
        raise SentinelError("Invalid masters response")
    for master in response:
        if isinstance(master, list):
            info = parse_single_master(master)
            if info.name == master_name:
                return info
    raise SentinelError(f"Master '{master_name}' not found")


class SentinelClient:
    """Tracks the current master through a set of sentinels."""

    def __init__(self, config: SentinelConfig, connector: Connector) -> None:
        self._config = config
        self._connector = connector
        self._sentinels: list[tuple[asyncio.Lock, SentinelConnection]] = []
        self._current_master: MasterInfo | None = None
        self._last_check = time.monotonic()

    @classmethod
    async def create(cls, config: SentinelConfig, connector: Connector) -> SentinelClient:
        """Connect to the configured sentinels and discover the master."""
        if not config.sentinels:
            raise ConfigError("No sentinels configured")
        client = cls(config, connector)
        await client._initialize_sentinels()
        await client._discover_master()
        return client

    @property
    def config(self) -> SentinelConfig:
        """The configuration the client was created with."""
        return self._config

    @property
    def current_master(self) -> MasterInfo | None:
        """The master last discovered, if any."""
        return self._current_master

    async def get_master(self) -> MasterInfo:
        """Return the master, asking the sentinels again once the check interval passed."""
        elapsed = time.monotonic() - self._last_check
        interval = self._config.check_interval.total_seconds()
        if elapsed < interval and self._current_master is not None:
            return self._current_master
        await self._discover_master()
        if self._current_master is None:
            raise SentinelError("No master available")
        return self._current_master

    async def connect_to_master(self) -> SentinelConnection:
        """Open a connection to the current master."""
        master = await self.get_master()
        return await self._connector(master.host, master.port)

    async def monitor(self) -> None:
        """Check the master every check interval, forever."""
        interval = self._config.check_interval.total_seconds()
        while True:
            try:
                await self.check_master_status()
            except RedisError as exc:
                logger.warning("Failed to check master status: %s", exc)
            await asyncio.sleep(interval)

    async def check_master_status(self) -> None:
        """Ping the master and rediscover it if it does not answer."""
        master = self._current_master
        if master is None:
            await self._discover_master()
            return
        try:
            await self._test_master_connection(master)
        except _CONNECT_ERRORS:
            logger.warning(
                "Master %s is not responding, discovering new master", master.address()
            )
            await self._discover_master()
        else:
            logger.debug("Master %s is healthy", master.address())

    async def _initialize_sentinels(self) -> None:
        for endpoint in self._config.sentinels:
            try:
                conn = await self._connect_to_sentinel(endpoint)
            except _CONNECT_ERRORS as exc:
                logger.warning(
                    "Failed to connect to sentinel %s: %s", endpoint.address(), exc
                )
                continue
            self._sentinels.append((asyncio.Lock(), conn))
            logger.info("Connected to sentinel: %s", endpoint.address())
        if not self._sentinels:
            raise SentinelError("No sentinels available")

    async def _connect_to_sentinel(self, endpoint: SentinelEndpoint) -> SentinelConnection:
        conn = await self._connector(endpoint.host, endpoint.port)
        if self._config.password is not None:
            await conn.command("AUTH", self._config.password)
        return conn

    async def _discover_master(self) -> None:
        for lock, conn in self._sentinels:
            try:
                async with lock:
                    response = await conn.command("SENTINEL", "masters")
                info = parse_master_info(response, self._config.master_name)
            except _CONNECT_ERRORS as exc:
                logger.debug("Failed to query master from sentinel: %s", exc)
                continue
            logger.info("Discovered master: %s", info.address())
            self._current_master = info
            self._last_check = time.monotonic()
            return
        raise SentinelError("Failed to discover master from any sentinel")

    async def _test_master_connection(self, master: MasterInfo) -> None:
        conn = await self._connector(master.host, master.port)
        try:
            response = await conn.command("PING")
        finally:
            await conn.close()
        if not isinstance(response, (str, bytes)) or as_text(response) != "PONG":
            raise RedisConnectionError("Master did not respond to PING")