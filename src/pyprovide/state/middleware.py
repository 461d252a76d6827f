"""Store middleware plumbing and the thunk interceptor."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

_logger = logging.getLogger(__name__)

Dispatch = Callable[[Any], Any]
GetState = Callable[[], dict[str, Any]]


@dataclass(frozen=True, slots=True)
class MiddlewareApi:
    """What a middleware sees of its store.

    ``dispatch`` re-enters the full middleware chain.  ``extra`` is the
    cross-provider command surface handed to thunks.
    """

    dispatch: Dispatch
    get_state: GetState
    extra: Any = None


Middleware = Callable[[MiddlewareApi], Callable[[Dispatch], Dispatch]]


def compose_dispatch(middleware: Sequence[Middleware], api: MiddlewareApi, base: Dispatch) -> Dispatch:
    """Wrap *base* so the first middleware in the list sees actions first."""
    dispatch = base
    for mw in reversed(middleware):
        dispatch = mw(api)(dispatch)
    return dispatch


def make_thunk_interceptor(
    wait: Callable[[], Sequence[Callable[[], Any]]],
    clear: Callable[[], Sequence[Callable[[bool], Any]]],
) -> Middleware:
    """Build a middleware that invokes callable actions instead of reducing them.

    A callable action is called as ``action(inner_dispatch, get_state, api)``.
    The ``wait`` hooks run before it; after every ``inner_dispatch`` the
    ``clear`` hooks run with whether the store state changed.  Hooks are read
    through the given accessors so later edits to a definition's hook lists
    are honoured.
    """

    def middleware(api: MiddlewareApi) -> Callable[[Dispatch], Dispatch]:
        def wrap(next_dispatch: Dispatch) -> Dispatch:
            def dispatch(action: Any) -> Any:
                if not callable(action):
                    return next_dispatch(action)

                for fn in wait():
                    fn()

                def inner_dispatch(inner_action: Any) -> Any:
                    state = api.get_state()
                    result = api.dispatch(inner_action)
                    hooks = clear()
                    if hooks:
                        changed = state is not api.get_state()
                        for fn in hooks:
                            fn(changed)
                    return result

                _logger.debug("Running thunk action %r", action)
                return action(inner_dispatch, api.get_state, api.extra)

            return dispatch

        return wrap

    return middleware
