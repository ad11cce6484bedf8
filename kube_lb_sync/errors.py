"""
Exception taxonomy.

Fatal errors end the process at startup; cycle-local errors are logged
by the reconciler and the cycle is skipped.
"""


class SyncError(Exception):
    """Base class for all kube-lb-sync errors."""


class KubeconfigError(SyncError):
    """The cluster access configuration could not be read or used."""


class QueryError(SyncError):
    """A cluster API query failed."""


class RenderError(SyncError):
    """The template could not be loaded or rendered."""


class WriteError(SyncError):
    """The rendered configuration could not be written."""
