"""Tests for provider instantiation, readiness and thunk actions."""

from __future__ import annotations

from typing import Any

import pytest

from pyprovide._engine.api import ProviderApi
from pyprovide.exceptions import UnknownProviderError
from pyprovide.models.definition import ProviderDefinition
from pyprovide.runtime import ProviderRuntime
from pyprovide.state.store import ProviderStore


def _counter(state: Any, action: Any) -> Any:
    if state is None:
        state = 0
    if isinstance(action, dict) and action.get("type") == "increment":
        return state + 1
    return state


def _value(state: Any, action: Any) -> Any:
    if isinstance(action, dict) and action.get("type") == "set":
        return action["value"]
    return state


class _DeferredReplicator:
    def __init__(self) -> None:
        self.requests: list[tuple[str, list[str], Any]] = []

    def get_initial_state(self, key: str, reducer_keys: list[str], set_state: Any) -> None:
        self.requests.append((key, reducer_keys, set_state))


def _increment() -> dict[str, Any]:
    return {"type": "increment"}


def _increment_twice() -> Any:
    def thunk(dispatch: Any, get_state: Any, api: Any) -> Any:
        dispatch({"type": "increment"})
        dispatch({"type": "increment"})
        return get_state()["count"]

    return thunk


class TestDedup:
    def test_repeated_requests_return_one_instance(self) -> None:
        created: list[ProviderStore] = []
        waits: list[bool] = []

        def store_factory(reducers: Any, **kwargs: Any) -> ProviderStore:
            store = ProviderStore(reducers, **kwargs)
            created.append(store)
            return store

        runtime = ProviderRuntime(store_factory=store_factory)
        definition = ProviderDefinition(key="counter", reducers={"count": _counter}, wait=lambda: waits.append(True))
        scope = runtime.create_scope([definition])

        instances = [runtime.instantiate(scope.consumer(), definition) for _ in range(5)]

        assert all(instance is instances[0] for instance in instances)
        assert len(created) == 1
        assert waits == [True]
        assert definition.instances == [instances[0]]
        assert scope.provider_instances == {"counter": instances[0]}

    def test_instance_reads_through_to_definition(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="counter", reducers={"count": _counter})
        scope = runtime.create_scope([definition])

        instance = runtime.instantiate(scope.consumer(), "counter")

        assert instance.key == "counter"
        assert instance.provider_key == "counter"
        assert instance.is_static
        assert instance.reducers == definition.reducers
        assert not instance.is_global

        instance.overrides["is_global"] = True
        assert instance.is_global
        assert not definition.is_global

    def test_unknown_provider_key_fails_fast(self) -> None:
        runtime = ProviderRuntime()
        scope = runtime.create_scope([])

        with pytest.raises(UnknownProviderError) as exc_info:
            runtime.instantiate(scope.consumer(), "missing")

        assert exc_info.value.key == "missing"

    def test_marks_provider_relevant_for_the_consumer(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="counter", reducers={"count": _counter})
        scope = runtime.create_scope([definition])
        consumer = scope.consumer()

        runtime.instantiate(consumer, definition)

        assert consumer.relevant_providers == {"counter": True}


class TestKeys:
    def test_dynamic_keys_create_one_instance_per_key(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(
            key="user",
            reducers={"user_id": _value},
            key_from=lambda consumer: f"user={consumer.props['user_id']}",
        )
        scope = runtime.create_scope([definition])

        first = runtime.instantiate(scope.consumer({"user_id": 1}), definition)
        second = runtime.instantiate(scope.consumer({"user_id": 2}), definition)
        again = runtime.instantiate(scope.consumer({"user_id": 1}), definition)

        assert first is again
        assert first is not second
        assert first.provider_key == "user=1"
        assert not first.is_static
        assert len(definition.instances) == 2

    def test_computed_key_matching_static_key_is_static(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="user", reducers={"user_id": _value})
        scope = runtime.create_scope([definition])

        instance = runtime.instantiate(scope.consumer(), definition, key=lambda consumer: "user")

        assert instance.is_static
        assert runtime.instantiate(scope.consumer(), definition) is instance

    def test_literal_key_overrides_definition_key(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="user", reducers={"user_id": _value})
        scope = runtime.create_scope([definition])

        instance = runtime.instantiate(scope.consumer(), definition, key="user=9")

        assert instance.provider_key == "user=9"
        assert scope.provider_instances["user=9"] is instance


class TestRegistries:
    def test_global_instances_are_shared_across_scopes(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="session", reducers={"count": _counter}, is_global=True)
        first_scope = runtime.create_scope([definition])
        second_scope = runtime.create_scope([definition])

        first = runtime.instantiate(first_scope.consumer(), definition)
        second = runtime.instantiate(second_scope.consumer(), definition)

        assert first is second
        assert runtime.global_instances == {"session": first}

    def test_scoped_instances_are_per_scope(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="list", reducers={"count": _counter})
        first_scope = runtime.create_scope([definition])
        second_scope = runtime.create_scope([definition])

        first = runtime.instantiate(first_scope.consumer(), definition)
        second = runtime.instantiate(second_scope.consumer(), definition)

        assert first is not second
        assert runtime.global_instances == {}

    def test_reset_drops_global_instances_and_hydration(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="session", reducers={"count": _counter}, is_global=True)
        scope = runtime.create_scope([definition])
        first = runtime.instantiate(scope.consumer(), definition)
        runtime.hydrate({"other": {"count": 1}})

        runtime.reset()

        assert runtime.client_states == {}
        assert runtime.instantiate(runtime.create_scope([definition]).consumer(), definition) is not first

    def test_hydrated_state_is_consumed_by_instantiation(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="counter", reducers={"count": _counter}, state={"count": 1})
        scope = runtime.create_scope([definition])
        runtime.hydrate({"counter": {"count": 5}})

        instance = runtime.instantiate(scope.consumer(), definition)

        assert instance.get_state() == {"count": 5}
        assert runtime.client_states == {}


class TestReadiness:
    def test_callback_after_ready_fires_synchronously(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="counter", reducers={"count": _counter})
        scope = runtime.create_scope([definition])
        instance = runtime.instantiate(scope.consumer(), definition)
        seen: list[bool] = []

        assert instance.ready
        runtime.instantiate(scope.consumer(), definition, ready_callback=lambda inst: seen.append(inst.ready))

        assert seen == [True]

    def test_callbacks_before_ready_fire_in_order_after_replication(self) -> None:
        runtime = ProviderRuntime()
        replicator = _DeferredReplicator()
        cleared: list[bool] = []
        definition = ProviderDefinition(
            key="remote",
            reducers={"count": _counter},
            replication={"replicator": replicator},
            clear=lambda changed: cleared.append(changed),
        )
        scope = runtime.create_scope([definition])
        seen: list[tuple[str, bool]] = []

        instance = runtime.instantiate(
            scope.consumer(),
            definition,
            ready_callback=lambda inst: seen.append(("first", inst.ready)),
        )
        runtime.instantiate(scope.consumer(), definition, ready_callback=lambda inst: seen.append(("second", inst.ready)))

        assert not instance.ready
        assert seen == []

        key, reducer_keys, set_state = replicator.requests[0]
        assert key == "remote"
        assert reducer_keys == ["count"]
        set_state({"count": 7})

        assert instance.ready
        assert seen == [("first", True), ("second", True)]
        assert instance.get_state() == {"count": 7}
        assert cleared == [True]

    def test_definition_on_ready_runs_after_flag_is_set(self) -> None:
        runtime = ProviderRuntime()
        seen: list[tuple[str, bool]] = []
        definition = ProviderDefinition(
            key="counter",
            reducers={"count": _counter},
            on_ready=lambda inst: seen.append(("definition", inst.ready)),
            on_instantiated=lambda inst: seen.append(("instantiated", inst.ready)),
        )
        scope = runtime.create_scope([definition])

        runtime.instantiate(scope.consumer(), definition, ready_callback=lambda inst: seen.append(("caller", inst.ready)))

        assert seen == [("instantiated", False), ("definition", True), ("caller", True)]
        assert len(definition.on_ready) == 1

    def test_clear_hooks_report_unchanged_state(self) -> None:
        runtime = ProviderRuntime()
        events: list[Any] = []
        definition = ProviderDefinition(
            key="counter",
            reducers={"count": _counter},
            wait=lambda: events.append("wait"),
            clear=lambda changed: events.append(("clear", changed)),
        )
        scope = runtime.create_scope([definition])

        runtime.instantiate(scope.consumer(), definition)

        assert events == ["wait", ("clear", False)]

    def test_set_key_refires_ready_callbacks(self) -> None:
        runtime = ProviderRuntime()
        events: list[Any] = []
        definition = ProviderDefinition(
            key="counter",
            reducers={"count": _counter},
            wait=lambda: events.append("wait"),
            clear=lambda changed: events.append(("clear", changed)),
            on_ready=lambda inst: events.append("ready"),
        )
        scope = runtime.create_scope([definition])
        instance = runtime.instantiate(scope.consumer(), definition)
        events.clear()

        instance.set_key("counter=2", lambda: events.append("rekeyed"))

        assert events == ["wait", "ready", "rekeyed", ("clear", True)]
        assert instance.store.key == "counter=2"
        assert instance.provider_key == "counter"


class TestActions:
    def test_action_creators_dispatch_through_the_store(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="counter", reducers={"count": _counter}, actions={"increment": _increment})
        scope = runtime.create_scope([definition])
        instance = runtime.instantiate(scope.consumer(), definition)

        instance.action_creators["increment"]()
        instance.action_creators["increment"]()

        assert instance.get_state() == {"count": 2}
        assert instance.action_creators["increment"].__name__ == "_increment"

    def test_thunks_run_with_wait_and_clear_hooks(self) -> None:
        runtime = ProviderRuntime()
        events: list[Any] = []
        definition = ProviderDefinition(
            key="counter",
            reducers={"count": _counter},
            actions={"increment_twice": _increment_twice},
            wait=lambda: events.append("wait"),
            clear=lambda changed: events.append(("clear", changed)),
        )
        scope = runtime.create_scope([definition])
        instance = runtime.instantiate(scope.consumer(), definition)
        events.clear()

        assert instance.action_creators["increment_twice"]() == 2
        assert events == ["wait", ("clear", True), ("clear", True)]

    def test_thunks_receive_an_api_bound_to_the_instance_scope(self) -> None:
        runtime = ProviderRuntime()
        definition = ProviderDefinition(key="counter", reducers={"count": _counter})
        scope = runtime.create_scope([definition])
        instance = runtime.instantiate(scope.consumer(), definition)
        received: list[Any] = []

        instance.store.dispatch(lambda dispatch, get_state, api: received.append(api))

        assert isinstance(received[0], ProviderApi)
        assert received[0].scope is scope
