from riverstate.types import ReactiveContext


def test_contexts_with_same_id_are_equal():
    assert ReactiveContext("alpha") == ReactiveContext("alpha")
    assert ReactiveContext("alpha") != ReactiveContext("beta")


def test_contexts_deduplicate_in_a_set():
    contexts = {ReactiveContext("a"), ReactiveContext("a"), ReactiveContext("b")}
    assert {c.id for c in contexts} == {"a", "b"}
    assert len(contexts) == len({"a", "b"})


def test_equality_ignores_dirty_state():
    first = ReactiveContext("same")
    second = ReactiveContext("same")
    first.mark_dirty()
    assert first == second
    assert hash(first) == hash(second)


def test_mark_dirty_counts_and_calls_back():
    seen = []
    context = ReactiveContext("ctx", on_dirty=seen.append)
    assert context.is_dirty is False
    times = 3
    for _ in range(times):
        context.mark_dirty()
    assert context.dirty_count == times
    assert context.is_dirty is True
    assert seen == [context] * times


def test_mark_dirty_without_callback():
    context = ReactiveContext("plain")
    context.mark_dirty()
    assert context.is_dirty is True