"""
Repository exceptions.
"""


class RepositoryError(Exception):
    """Base exception for repository errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ArgumentAbsentError(RepositoryError, ValueError):
    """Raised when a required constructor argument is None."""

    def __init__(self, argument_name: str):
        """
        Initialize argument absent error.

        Args:
            argument_name: Name of the missing argument
        """
        super().__init__(f"Value cannot be None. Parameter name: {argument_name}")
        self.argument_name = argument_name


class EntityNotFoundError(RepositoryError, KeyError):
    """Raised when an entity does not exist at the given keys."""

    def __init__(self, partition_key: str, row_key: str):
        """
        Initialize entity not found error.

        Args:
            partition_key: Partition key that was looked up
            row_key: Row key that was looked up
        """
        super().__init__(
            f"Not found in table storage. PartitionKey = {partition_key}, RowKey = {row_key}"
        )
        self.partition_key = partition_key
        self.row_key = row_key

    def __str__(self) -> str:
        """Return the message unquoted."""
        return self.message
