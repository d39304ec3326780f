# redisox

Asyncio building blocks for talking to Redis. The package covers four
areas:

- Lua scripts with SHA1 digests and an `EVALSHA`-then-`EVAL` fallback.
- `MULTI`/`EXEC` transactions.
- Parsing of Redis Streams replies.
- Master discovery through Sentinel.

The package has no runtime dependencies.

## What it does not do

The package does not open sockets. It does not encode or decode the wire
protocol, and it has no full Redis client. You supply the object that
talks to the server:

- For scripts, a client with async `evalsha`, `eval` and `script_load`
  methods.
- For transactions, an executor with async `multi`, `queue_command`,
  `exec`, `discard`, `watch` and `unwatch` methods.
- For Sentinel, a connector. This is an async callable `(host, port)`
  that returns a connection with async `command(*args)` and `close()`
  methods.

Replies are expected as plain Python values:

- `str` or `bytes` for strings
- `int` for integers
- `list` for arrays
- `None` for null

## Installation

```
pip install redisox
```

To run the test suite:

```
pip install "redisox[test]"
pytest
```

## Lua scripts

A `Script` holds its Lua source and the SHA1 digest of that source
(`script.sha`). Calling `execute` first tries `client.evalsha`. If that
raises a `ProtocolError` whose message contains `NOSCRIPT`, it calls
`client.eval` with the full source. Any other error is raised again.

```python
from redisox.script import Script, ScriptManager, calculate_sha1

script = Script("return redis.call('GET', KEYS[1])")
assert script.sha == calculate_sha1(script.source)

result = await script.execute(client, ["mykey"], [])
sha = await script.load(client)   # SCRIPT LOAD through client.script_load
```

`ScriptManager` is a registry of named scripts. Registering, looking up
and removing scripts are plain method calls. Only `execute` and
`load_all` talk to the client, so only those two are awaited.

```python
manager = ScriptManager()
manager.register("greeting", Script("return 'Hello'"))
assert "greeting" in manager and len(manager) == 1
names = manager.list_scripts()
script = manager.get("greeting")          # None if absent
result = await manager.execute("greeting", client, [], [])
loaded = await manager.load_all(client)   # name -> sha
manager.remove("greeting")                # returns the script, or None
manager.clear()
```

`ScriptManager.execute` raises `ProtocolError` if no script is registered
under the name.

Ready-made scripts for common patterns:

| Function | What the script does |
| --- | --- |
| `atomic_increment_with_expiration()` | Increments `KEYS[1]` by `ARGV[1]` and sets a TTL of `ARGV[2]` seconds. |
| `conditional_set()` | Sets `KEYS[1]` to `ARGV[2]` only while it holds `ARGV[1]`. |
| `sliding_window_rate_limit()` | Sliding-window limit of `ARGV[2]` requests per `ARGV[1]` seconds. |
| `distributed_lock()` | `SET NX EX` lock acquisition. |
| `release_lock()` | Deletes the lock only if the holder matches. |

## Transactions

A `Transaction` queues `TransactionCommand` records. Each record has a
`name`, its `args`, its `keys`, and `key` (the first of the keys). The
transaction sends them through your executor. The builder methods return
the transaction, so calls can be chained:

- `set`, `get`, `delete`
- `incr`, `decr`, `incr_by`, `decr_by`
- `exists`
- `expire` (takes a `timedelta` or a number of seconds)
- `ttl`
- `hget`, `hset`

```python
from redisox.transaction import Transaction, TransactionResult

tx = Transaction(executor)
await tx.watch(["balance"])
tx.set("balance", "100").incr("counter").hget("user:1", "name")
results = await tx.exec()   # MULTI, each queued command, then EXEC

reader = TransactionResult(results)
first = reader.next(str)    # optional converter
third = reader.get(2, str)
everything = reader.into_results()
```

Errors and state:

- `exec` on an empty transaction raises `ProtocolError`.
- `watch` after `MULTI` has been sent raises `ProtocolError`.
- `exec` empties the queue.
- `discard` tells the executor to discard and clears the queue.
- `unwatch` forgets the watched keys.
- `TransactionResult.next` raises `ProtocolError` when no results are left.
- `TransactionResult.get` raises `ProtocolError` when the index is out of
  bounds.

## Streams

`redisox.streams` turns raw replies into records:

- `parse_stream_entries` parses an `XRANGE` reply into `StreamEntry`
  objects.
- `parse_xread_response` parses an `XREAD` or `XREADGROUP` reply into a
  dict keyed by stream name. A `None` reply gives an empty dict.
- `parse_stream_info` parses an `XINFO STREAM` reply into a `StreamInfo`.
  Unknown keys are ignored.

A reply with the wrong shape raises `ResponseTypeError`.

```python
from datetime import timedelta
from redisox.streams import StreamRange, ReadOptions, parse_stream_entries

for entry in parse_stream_entries(reply):
    print(entry.id, entry.timestamp(), entry.sequence(), entry.get_field("user"))

everything = StreamRange.all().with_count(100)   # "-" .. "+"
later = StreamRange.starting_at("1000")           # "1000" .. "+"
earlier = StreamRange.to("2000")                  # "-" .. "2000"
options = ReadOptions.non_blocking(10)
waiting = ReadOptions.blocking(timedelta(milliseconds=500))
```

For an ID that does not parse as a number, `timestamp()` and `sequence()`
return `None`. The module also defines the plain records
`ConsumerGroupInfo`, `ConsumerInfo` and `PendingMessage`.

`redisox.values` holds the helpers the parsers use:

- `as_text` returns a string or integer reply as `str`.
- `as_int` returns an integer reply, or a numeric string reply, as `int`.
- `pairs` groups a flat `[k1, v1, k2, v2, ...]` list into tuples and drops
  a trailing element that has no partner.

## Sentinel

`SentinelConfig` is immutable. Its builder methods return copies.

- `add_sentinel` ignores an address it cannot parse.
- `SentinelEndpoint.from_address` raises `ConfigError` for a malformed
  `host:port`.

```python
from datetime import timedelta
from redisox.sentinel import SentinelConfig, SentinelClient

password = "password"
config = (
    SentinelConfig("mymaster")
    .add_sentinel("127.0.0.1:26379")
    .add_sentinel("127.0.0.1:26380")
    .with_password(password)
    .with_check_interval(timedelta(seconds=5))
    .with_max_retries(5)
)

client = await SentinelClient.create(config, connector)
master = await client.get_master()
print(master.address(), master.is_down(), master.is_failover_in_progress())
connection = await client.connect_to_master()
```

How the client behaves:

- `create` raises `ConfigError` when no sentinels are configured.
- `create` connects to each sentinel, sending `AUTH` when a password is
  set. It raises `SentinelError` if none can be reached.
- Discovery asks each sentinel for `SENTINEL masters`. It raises
  `SentinelError` if no sentinel reports the named master.
- `get_master` returns the cached master until the check interval has
  passed, then asks the sentinels again.
- `check_master_status` sends `PING` to the master and rediscovers if the
  master does not answer `PONG`.
- `monitor` runs that check every check interval and never returns.

`parse_master_info` and `parse_single_master` parse `SENTINEL masters`
replies into `MasterInfo` records.

## Errors

Every exception derives from `redisox.errors.RedisError`:

| Exception | Also derives from |
| --- | --- |
| `ProtocolError` | |
| `ConfigError` | `ValueError` |
| `SentinelError` | |
| `ResponseTypeError` | `TypeError` |
| `RedisConnectionError` | `ConnectionError` |