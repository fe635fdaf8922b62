from errors import DependencyFailure
from side_effects import PostCommitEffects


async def test_effects_run_in_order_and_failures_are_contained():
    calls = []

    async def first():
        calls.append("first")
        return 1

    async def broken():
        calls.append("broken")
        raise DependencyFailure("renderer down")

    async def last():
        calls.append("last")
        return "done"

    effects = PostCommitEffects(context="test").add("first", first).add("broken", broken).add("last", last)
    results = await effects.run()

    assert calls == ["first", "broken", "last"]
    assert [r.name for r in results] == ["first", "broken", "last"]
    assert results[0].ok and results[0].value == 1
    assert not results[1].ok and isinstance(results[1].error, DependencyFailure)
    assert results[2].value == "done"
    assert PostCommitEffects.find(results, "broken") is results[1]
    assert PostCommitEffects.find(results, "missing") is None


async def test_empty_effect_list():
    effects = PostCommitEffects()
    assert len(effects) == 0
    assert await effects.run() == []
