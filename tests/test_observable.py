from __future__ import annotations

from pycrescent.state.events import StaleFetchPolicy
from pycrescent.state.observable import Observable
from pycrescent.state.policy import is_superseded, should_apply_fetch


def test_set_notifies_only_on_change() -> None:
    value: Observable[int] = Observable(0, name="counter")
    seen: list[int] = []
    value.subscribe(seen.append)

    assert value.set(1) is True
    assert value.set(1) is False
    assert value.get() == 1
    assert seen == [1]


def test_unsubscribe_stops_notifications() -> None:
    value: Observable[str | None] = Observable(None)
    seen: list[str | None] = []
    unsubscribe = value.subscribe(seen.append)

    value.set("a")
    unsubscribe()
    unsubscribe()
    value.set("b")

    assert seen == ["a"]
    assert value.listener_count == 0


def test_failing_listener_does_not_block_others() -> None:
    value: Observable[int] = Observable(0)
    seen: list[int] = []

    def explode(_value: int) -> None:
        raise RuntimeError("listener bug")

    value.subscribe(explode)
    value.subscribe(seen.append)

    assert value.set(7) is True
    assert seen == [7]


def test_fetch_policy() -> None:
    old, new = object(), object()

    assert not is_superseded(old, old)
    assert is_superseded(old, new)
    assert should_apply_fetch(policy=StaleFetchPolicy.APPLY, bound_at_issue=old, bound_now=new)
    assert should_apply_fetch(policy=StaleFetchPolicy.DISCARD, bound_at_issue=old, bound_now=old)
    assert not should_apply_fetch(policy=StaleFetchPolicy.DISCARD, bound_at_issue=old, bound_now=None)
