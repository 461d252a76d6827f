"""Constants shared across pyprovide modules."""

from __future__ import annotations

from typing import Any

#: Action dispatched once per reducer to compute a store's initial state.
INIT_ACTION_TYPE: str = "@@pyprovide/INIT"

INIT_ACTION: dict[str, Any] = {"type": INIT_ACTION_TYPE}

#: Reserved props keys a consumer uses to declare queries and receive results.
QUERY_PROP: str = "query"
QUERIES_PROP: str = "queries"
QUERY_OPTIONS_PROP: str = "query_options"
QUERIES_OPTIONS_PROP: str = "queries_options"
RESULT_PROP: str = "result"
RESULTS_PROP: str = "results"

#: Query option naming the reducer keys a replicator should return.
SELECT_OPTION: str = "select"
