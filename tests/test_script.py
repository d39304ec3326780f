import pytest

from redisox.errors import ProtocolError
from redisox.script import (
    Script,
    ScriptManager,
    atomic_increment_with_expiration,
    calculate_sha1,
    conditional_set,
    distributed_lock,
    release_lock,
    sliding_window_rate_limit,
)


class FakeClient:
    def __init__(self, cached=(), evalsha_error=None):
        self.cached = set(cached)
        self.evalsha_error = evalsha_error
        self.calls = []

    async def evalsha(self, sha, keys, args):
        self.calls.append(("evalsha", sha, keys, args))
        if self.evalsha_error is not None:
            raise self.evalsha_error
        if sha not in self.cached:
            raise ProtocolError("NOSCRIPT No matching script. Please use EVAL.")
        return "from-evalsha"

    async def eval(self, source, keys, args):
        self.calls.append(("eval", source, keys, args))
        return "from-eval"

    async def script_load(self, source):
        self.calls.append(("script_load", source))
        return calculate_sha1(source)


def test_script_creation():
    script = Script("return 'hello'")
    assert script.source == "return 'hello'"
    assert script.sha
    assert len(script.sha) == 40


def test_sha1_calculation():
    assert calculate_sha1("hello world") == "2aae6c35c94fcfb415dbe95f408b9ce91ee846ed"


def test_script_sha_consistency():
    first = Script("return 1")
    second = Script("return 1")
    assert first.sha == "e0e1f9fabfc9d4800c877a703b823ac0578ff8db"
    assert second.sha == "e0e1f9fabfc9d4800c877a703b823ac0578ff8db"


def test_script_sha_uniqueness():
    assert Script("return 1").sha != Script("return 2").sha


def test_script_manager_creation():
    manager = ScriptManager()
    assert len(manager) == 0
    assert manager.list_scripts() == []


def test_script_manager_register_and_get():
    manager = ScriptManager()
    script = Script("return 'test'")
    sha = script.sha
    manager.register("test_script", script)

    assert len(manager) == 1
    assert "test_script" in manager
    retrieved = manager.get("test_script")
    assert retrieved.sha == sha
    assert retrieved.source == "return 'test'"


def test_script_manager_get_missing():
    assert ScriptManager().get("nope") is None


def test_script_manager_remove():
    manager = ScriptManager()
    manager.register("test_script", Script("return 'test'"))
    assert len(manager) == 1

    removed = manager.remove("test_script")
    assert removed == Script("return 'test'")
    assert len(manager) == 0
    assert manager.remove("nonexistent") is None


def test_script_manager_clear():
    manager = ScriptManager()
    manager.register("script1", Script("return 1"))
    manager.register("script2", Script("return 2"))
    assert len(manager) == 2

    manager.clear()
    assert len(manager) == 0


def test_script_manager_list_scripts():
    manager = ScriptManager()
    manager.register("script_a", Script("return 'a'"))
    manager.register("script_b", Script("return 'b'"))
    assert sorted(manager.list_scripts()) == ["script_a", "script_b"]


@pytest.mark.parametrize(
    "factory",
    [
        atomic_increment_with_expiration,
        conditional_set,
        sliding_window_rate_limit,
        distributed_lock,
        release_lock,
    ],
)
def test_pattern_scripts(factory):
    script = factory()
    assert "KEYS[1]" in script.source
    assert script.sha == calculate_sha1(script.source)


def test_pattern_scripts_are_distinct():
    shas = {
        f().sha
        for f in (
            atomic_increment_with_expiration,
            conditional_set,
            sliding_window_rate_limit,
            distributed_lock,
            release_lock,
        )
    }
    assert len(shas) == 5


@pytest.mark.asyncio
async def test_execute_uses_evalsha_when_cached():
    script = Script("return KEYS[1]")
    client = FakeClient(cached={script.sha})
    result = await script.execute(client, ["user"], ["123"])
    assert result == "from-evalsha"
    assert client.calls == [("evalsha", script.sha, ["user"], ["123"])]


@pytest.mark.asyncio
async def test_execute_falls_back_to_eval_on_noscript():
    script = Script("return KEYS[1]")
    client = FakeClient()
    result = await script.execute(client, ["user"], ["123"])
    assert result == "from-eval"
    assert [c[0] for c in client.calls] == ["evalsha", "eval"]
    assert client.calls[1] == ("eval", "return KEYS[1]", ["user"], ["123"])


@pytest.mark.asyncio
async def test_execute_propagates_other_errors():
    script = Script("return 1")
    client = FakeClient(evalsha_error=ProtocolError("ERR wrong number of args"))
    with pytest.raises(ProtocolError, match="wrong number"):
        await script.execute(client, [], [])
    assert [c[0] for c in client.calls] == ["evalsha"]


@pytest.mark.asyncio
async def test_load_returns_digest():
    script = Script("return 'Hello, World!'")
    client = FakeClient()
    assert await script.load(client) == script.sha


@pytest.mark.asyncio
async def test_manager_execute_by_name():
    manager = ScriptManager()
    script = Script("return KEYS[1]")
    manager.register("get_key", script)
    client = FakeClient(cached={script.sha})
    assert await manager.execute("get_key", client, ["mykey"], []) == "from-evalsha"


@pytest.mark.asyncio
async def test_manager_execute_missing_script():
    manager = ScriptManager()
    with pytest.raises(ProtocolError, match="Script 'missing' not found"):
        await manager.execute("missing", FakeClient(), [], [])


@pytest.mark.asyncio
async def test_manager_load_all():
    manager = ScriptManager()
    manager.register("script1", Script("return 1"))
    manager.register("script2", Script("return 2"))
    client = FakeClient()
    results = await manager.load_all(client)
    assert results == {
        "script1": Script("return 1").sha,
        "script2": Script("return 2").sha,
    }
    assert len([c for c in client.calls if c[0] == "script_load"]) == 2