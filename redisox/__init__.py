"""Asyncio building blocks for Redis: Lua scripts, transactions, stream reply parsing and Sentinel discovery."""

__version__ = "0.2.2"

__all__ = ["errors", "script", "values", "streams", "transaction", "sentinel"]