"""Exception types raised inside the pipeline.

Fetch and viewer failures are normally caught where they happen and degrade to
an empty or neutral state. DataFetchError escapes only from the strict
``get_json`` path, where the API maps it to a 502.
"""


class KinographError(Exception):
    """Base class for pipeline errors."""


class DataFetchError(KinographError):
    """A backend feed could not be retrieved or decoded."""


class ViewerUnavailableError(KinographError):
    """A viewer operation was requested before a structure was loaded."""
