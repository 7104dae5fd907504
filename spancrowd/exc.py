class MappingInconsistency(Exception):  # noqa: N818
    """
    Exception raised when an offset has no entry in a character/token-index
    mapping table.

    This happens when a span is not aligned to token boundaries, or when a
    token index falls outside the tokens of the document it claims to belong
    to.
    """

    def __init__(self, offset: int, table: str):
        self.offset = offset
        self.table = table
        super().__init__(
            f"Offset {offset} has no entry in the {table} table: "
            "char offset to token mapping is inconsistent"
        )


class MalformedRecord(Exception):  # noqa: N818
    """Exception raised when a judgment record cannot be used."""

    def __init__(self, reason: str, line_number: int | None = None):
        self.reason = reason
        self.line_number = line_number
        if line_number is None:
            super().__init__(f"Malformed record: {reason}")
        else:
            super().__init__(f"Malformed record on line {line_number}: {reason}")


class NotFound(Exception):  # noqa: N818
    """Exception raised when a resource does not exist."""

    def __init__(self, resource_type: str, resource_id: int | str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f'{resource_type} with ID "{resource_id!s}" does not exist')


class AlreadyExists(Exception):  # noqa: N818
    """Exception raised when a resource already exists."""

    def __init__(self, resource_type: str, resource_id: int | str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f'{resource_type} with ID "{resource_id!s}" already exists')


class TransportFailure(Exception):  # noqa: N818
    """
    Exception raised when the crowd job transport returns nothing or fails.

    The provider may simply not have prepared the data yet, so the message
    asks the user to try again later.
    """

    def __init__(self, message: str, error: Exception | None = None):
        self.error = error
        super().__init__(message)
