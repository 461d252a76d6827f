"""Tests for the cross-provider subscription graph."""

from __future__ import annotations

from typing import Any

import pytest

from pyprovide.exceptions import UnknownProviderError
from pyprovide.models.definition import ProviderDefinition
from pyprovide.models.instance import ProviderInstance
from pyprovide.runtime import ProviderRuntime


def _counter(state: Any, action: Any) -> Any:
    if state is None:
        state = 0
    if isinstance(action, dict) and action.get("type") == "increment":
        return state + 1
    return state


class _Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def __call__(self, supplier: ProviderInstance, subscriber: ProviderInstance) -> None:
        self.calls.append((supplier.provider_key, subscriber.provider_key))


def _definition(key: str, **kwargs: Any) -> ProviderDefinition:
    return ProviderDefinition(key=key, reducers={"count": _counter}, **kwargs)


def _increment(instance: ProviderInstance) -> None:
    instance.store.dispatch({"type": "increment"})


class TestRuntimeRegistration:
    def test_register_replays_existing_pairs_and_listens(self) -> None:
        runtime = ProviderRuntime()
        recorder = _Recorder()
        scope = runtime.create_scope([_definition("theme"), _definition("page")])
        theme = runtime.instantiate(scope.consumer(), "theme")
        page = runtime.instantiate(scope.consumer(), "page")

        assert runtime.subscribe(scope, "page", "theme", recorder) is True
        assert recorder.calls == [("theme", "page")]

        _increment(theme)
        assert recorder.calls == [("theme", "page"), ("theme", "page")]

        _increment(page)
        assert len(recorder.calls) == 2

    def test_duplicate_registration_is_rejected(self) -> None:
        runtime = ProviderRuntime()
        recorder = _Recorder()
        scope = runtime.create_scope([_definition("theme"), _definition("page")])
        theme = runtime.instantiate(scope.consumer(), "theme")
        runtime.instantiate(scope.consumer(), "page")

        assert runtime.subscribe(scope, "page", "theme", recorder)
        assert runtime.subscribe(scope, "page", "theme", recorder) is False

        recorder.calls.clear()
        _increment(theme)
        assert recorder.calls == [("theme", "page")]

    def test_unknown_provider_key_raises(self) -> None:
        runtime = ProviderRuntime()
        scope = runtime.create_scope([_definition("theme")])

        with pytest.raises(UnknownProviderError):
            runtime.subscribe(scope, "missing", "theme", _Recorder())


class TestDeclaredEdges:
    @pytest.mark.parametrize("supplier_first", [True, False])
    def test_supplier_side_declaration(self, supplier_first: bool) -> None:
        runtime = ProviderRuntime()
        recorder = _Recorder()
        scope = runtime.create_scope([_definition("theme", subscribers={"page": recorder}), _definition("page")])

        order = ["theme", "page"] if supplier_first else ["page", "theme"]
        instances = {key: runtime.instantiate(scope.consumer(), key) for key in order}

        assert recorder.calls == [("theme", "page")]
        assert "theme" in scope.providers["page"].subscribe_to

        _increment(instances["theme"])
        assert recorder.calls == [("theme", "page"), ("theme", "page")]

    @pytest.mark.parametrize("supplier_first", [True, False])
    def test_subscriber_side_declaration(self, supplier_first: bool) -> None:
        runtime = ProviderRuntime()
        recorder = _Recorder()
        scope = runtime.create_scope([_definition("theme"), _definition("page", subscribe_to={"theme": recorder})])

        order = ["theme", "page"] if supplier_first else ["page", "theme"]
        instances = {key: runtime.instantiate(scope.consumer(), key) for key in order}

        assert recorder.calls == [("theme", "page")]
        assert "page" in scope.providers["theme"].subscribers

        _increment(instances["theme"])
        assert recorder.calls == [("theme", "page"), ("theme", "page")]

    def test_supplier_handler_wins_when_both_sides_declare(self) -> None:
        runtime = ProviderRuntime()
        supplier_handler = _Recorder()
        subscriber_handler = _Recorder()
        scope = runtime.create_scope(
            [
                _definition("theme", subscribers={"page": supplier_handler}),
                _definition("page", subscribe_to={"theme": subscriber_handler}),
            ]
        )

        theme = runtime.instantiate(scope.consumer(), "theme")
        runtime.instantiate(scope.consumer(), "page")
        _increment(theme)

        assert supplier_handler.calls == [("theme", "page"), ("theme", "page")]
        assert subscriber_handler.calls == []

    def test_later_subscriber_instances_join_the_fan_out(self) -> None:
        runtime = ProviderRuntime()
        recorder = _Recorder()
        page = ProviderDefinition(
            key="page",
            reducers={"count": _counter},
            key_from=lambda consumer: f"page={consumer.props['n']}",
        )
        scope = runtime.create_scope([_definition("theme", subscribers={"page": recorder}), page])
        theme = runtime.instantiate(scope.consumer(), "theme")
        runtime.instantiate(scope.consumer({"n": 1}), "page")
        runtime.instantiate(scope.consumer({"n": 2}), "page")
        recorder.calls.clear()

        _increment(theme)

        assert recorder.calls == [("theme", "page=1"), ("theme", "page=2")]

    def test_unknown_declared_peer_raises_on_instantiation(self) -> None:
        runtime = ProviderRuntime()
        scope = runtime.create_scope([_definition("theme", subscribers={"missing": _Recorder()})])

        with pytest.raises(UnknownProviderError) as exc_info:
            runtime.instantiate(scope.consumer(), "theme")

        assert exc_info.value.key == "missing"

    def test_unknown_declared_peer_leaves_nothing_registered(self) -> None:
        runtime = ProviderRuntime()
        waits: list[bool] = []
        theme = _definition("theme", subscribers={"missing": _Recorder()}, wait=lambda: waits.append(True))
        scope = runtime.create_scope([theme])
        ready: list[ProviderInstance] = []

        for _ in range(2):
            with pytest.raises(UnknownProviderError):
                runtime.instantiate(scope.consumer(), "theme", ready_callback=ready.append)

        assert scope.provider_instances == {}
        assert theme.instances == []
        assert waits == []
        assert ready == []


class TestSelfEdges:
    def test_subscribe_to_self_replays_the_first_instance_once(self) -> None:
        runtime = ProviderRuntime()
        recorder = _Recorder()
        scope = runtime.create_scope([_definition("a", subscribe_to={"a": recorder})])

        runtime.instantiate(scope.consumer(), "a")

        assert recorder.calls == [("a", "a")]

    def test_subscribers_self_edge_replays_once(self) -> None:
        runtime = ProviderRuntime()
        recorder = _Recorder()
        scope = runtime.create_scope([_definition("a", subscribers={"a": recorder})])

        runtime.instantiate(scope.consumer(), "a")

        assert recorder.calls == [("a", "a")]

    def test_self_edge_covers_every_pair_of_dynamic_instances(self) -> None:
        runtime = ProviderRuntime()
        recorder = _Recorder()
        definition = ProviderDefinition(
            key="a",
            reducers={"count": _counter},
            key_from=lambda consumer: f"a={consumer.props['n']}",
            subscribe_to={"a": recorder},
        )
        scope = runtime.create_scope([definition])

        runtime.instantiate(scope.consumer({"n": 1}), "a")
        runtime.instantiate(scope.consumer({"n": 2}), "a")

        assert sorted(recorder.calls) == [("a=1", "a=1"), ("a=1", "a=2"), ("a=2", "a=1"), ("a=2", "a=2")]


class TestReset:
    def test_reset_drops_subscriber_instances_from_the_fan_out(self) -> None:
        runtime = ProviderRuntime()
        recorder = _Recorder()
        theme = _definition("theme", subscribers={"page": recorder})
        page = _definition("page")
        old_scope = runtime.create_scope([theme, page])
        runtime.instantiate(old_scope.consumer(), "page")

        runtime.reset()

        assert page.instances == []
        new_scope = runtime.create_scope([theme, page])
        new_theme = runtime.instantiate(new_scope.consumer(), "theme")
        recorder.calls.clear()
        _increment(new_theme)

        assert recorder.calls == []
