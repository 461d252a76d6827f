"""Internal engine operations for :class:`pyprovide.runtime.ProviderRuntime`.

These modules keep ``runtime.py`` small; each function takes the runtime
(or the scope it needs) explicitly.
"""
