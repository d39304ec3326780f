"""Exception hierarchy for the client."""


class RedisError(Exception):
    """Base class for every error raised by the client."""

    @property
    def message(self) -> str:
        """The human-readable message the error was raised with."""
        return self.args[0] if self.args else ""


class ProtocolError(RedisError):
    """The server replied with an error or the exchange broke protocol rules."""


class ConfigError(RedisError, ValueError):
    """A configuration value is missing or malformed."""


class SentinelError(RedisError):
    """Sentinel discovery or failover handling failed."""


class ResponseTypeError(RedisError, TypeError):
    """A reply did not have the shape or type that was expected."""


class RedisConnectionError(RedisError, ConnectionError):
    """A connection to a server could not be made or was lost."""