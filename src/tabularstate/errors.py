"""
Exception taxonomy for the wrapper layer.

Every error also derives from the builtin exception a caller would naturally
catch (RuntimeError, NotImplementedError, ...), so code that does not know
about this package still handles them sensibly.
"""


class Messages:
    """User-facing message templates."""
    TABLE_MUST_HAVE_AT_LEAST_ONE_PARTITION = "A table must contain at least one partition."
    CANNOT_DELETE_OBJECT = "This object cannot be deleted."
    CANNOT_CREATE_OBJECT = "Creating objects of type '{type_name}' is not permitted by the current governance policy."
    DATA_SOURCE_IN_USE = "Data source '{name}' is used by {count} partition(s) and cannot be deleted."
    OBJECT_ALREADY_REMOVED = "'{name}' has already been removed from the model."
    DUPLICATE_NAME = "An object named '{name}' already exists in {collection}."
    EMPTY_NAME = "Name cannot be empty."
    UNSUPPORTED_SOURCE_TYPE = "Property '{property_name}' cannot be set on a partition with source type {source_type}."


class TabularStateError(Exception):
    """Base class for all errors raised by tabularstate."""


class PreconditionError(TabularStateError, RuntimeError):
    """A checked precondition refused the operation before anything changed."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnsupportedOperationError(TabularStateError, NotImplementedError):
    """The operation is not valid for this object or its current source kind."""


class OperationNotPermittedError(TabularStateError, PermissionError):
    """The governance collaborator refused creating an object of a given kind."""

    def __init__(self, kind: type):
        super().__init__(Messages.CANNOT_CREATE_OBJECT.format(type_name=getattr(kind, 'type_name', kind.__name__)))
        self.kind = kind


class DuplicateNameError(TabularStateError, ValueError):
    """Name is empty or already taken within the owning collection."""


class TransactionError(TabularStateError, RuntimeError):
    """Unbalanced transaction brackets or history navigation inside a transaction."""


class ReentrantChangeError(TabularStateError, RuntimeError):
    """A pre-change validator attempted to mutate the model."""
