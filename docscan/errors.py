"""Error kinds raised by the document store and its collaborators.

Every public store operation either returns a complete result or raises one of
these. ``NotFound`` also derives from ``KeyError`` and ``InvalidArgument`` from
``ValueError`` so callers written against the builtin lookups keep working.
"""


class DocScanError(Exception):
    """Base class for all storage errors."""


class NotInitialized(DocScanError):
    pass


class InvalidArgument(DocScanError, ValueError):
    pass


class NotFound(DocScanError, KeyError):
    def __str__(self):
        # KeyError repr()s its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class ConstraintViolation(DocScanError):
    pass


class IOFailure(DocScanError):
    pass


class StoreFailure(DocScanError):
    pass
