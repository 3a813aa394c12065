"""
Exception types raised by circuitscope.

Every error derives from CircuitScopeError and from the built-in exception a
caller would naturally catch (ValueError for bad input, KeyError for missing
ids), so existing ``except ValueError`` handlers keep working.
"""


class CircuitScopeError(Exception):
    """Base class for all circuitscope errors."""


class MalformedInputError(CircuitScopeError, ValueError):
    """A dataset row, argument or document is missing required fields or is out of range."""


class MalformedSnapshotError(MalformedInputError):
    """A circuit graph snapshot cannot be restored."""


class NotFoundError(CircuitScopeError, KeyError):
    """
    A mutation referenced a node or edge id that does not exist.

    Queries never raise this; they return None, an empty list or False.
    """

    def __str__(self) -> str:
        # KeyError quotes its argument, which reads badly for full sentences
        return str(self.args[0]) if self.args else ""
