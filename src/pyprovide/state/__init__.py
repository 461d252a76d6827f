"""Store layer.

Per-instance state containers, their middleware chain, replication hooks
and the ready queue that sequences instance readiness.
"""
