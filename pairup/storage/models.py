"""
Pydantic models for table storage entities.

Defines the base entity shape every repository works with, and the
table naming rules enforced by Azure Table Storage.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field


SYSTEM_PROPERTIES = frozenset({"PartitionKey", "RowKey", "Timestamp", "etag", "odata.etag"})

EntityT = TypeVar("EntityT", bound="TableEntity")


class TableNameValidator:
    """Validates Azure Table Storage table naming rules."""

    @staticmethod
    def validate(name: str) -> tuple[bool, Optional[str]]:
        """
        Validate table name against Azure rules.

        Rules:
        - 3-63 characters
        - Alphanumeric only
        - Must start with a letter

        Args:
            name: Table name to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not name:
            return False, "Table name cannot be empty"

        if len(name) < 3 or len(name) > 63:
            return False, f"Table name must be between 3 and 63 characters, got {len(name)}"

        if not re.match(r"^[A-Za-z][A-Za-z0-9]*$", name):
            return False, "Table name must start with a letter and contain only alphanumeric characters"

        return True, None


class TableEntity(BaseModel):
    """
    Base table storage entity.

    Every entity carries PartitionKey and RowKey. Timestamp and etag are
    assigned by the store and ignored on write. Subclasses declare their
    application fields; undeclared properties are kept as extra fields.
    """
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    PartitionKey: str = ""
    RowKey: str = ""
    Timestamp: Optional[datetime] = None
    etag: str = Field(default="", alias="odata.etag")

    def get_custom_properties(self) -> Dict[str, Any]:
        """Get all application properties (declared and extra), without system properties."""
        data = self.model_dump(by_alias=False)
        return {k: v for k, v in data.items() if k not in SYSTEM_PROPERTIES}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert entity to a store property dictionary.

        System properties keep their native types; the store decides what
        to do with Timestamp and etag.
        """
        result: Dict[str, Any] = {
            "PartitionKey": self.PartitionKey,
            "RowKey": self.RowKey,
        }
        if self.Timestamp is not None:
            result["Timestamp"] = self.Timestamp
        if self.etag:
            result["etag"] = self.etag

        result.update(self.get_custom_properties())
        return result

    @classmethod
    def from_dict(cls: Type[EntityT], data: Dict[str, Any]) -> EntityT:
        """
        Create entity from a store property dictionary.

        Args:
            data: Dictionary with entity data

        Returns:
            Entity instance
        """
        timestamp = data.get("Timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace('Z', '+00:00'))

        custom_props = {k: v for k, v in data.items() if k not in SYSTEM_PROPERTIES}

        return cls(
            PartitionKey=data.get("PartitionKey", ""),
            RowKey=data.get("RowKey", ""),
            Timestamp=timestamp,
            etag=data.get("odata.etag", data.get("etag", "")),
            **custom_props
        )

    @staticmethod
    def generate_etag(timestamp: Optional[datetime] = None) -> str:
        """
        Generate an ETag in the Azure weak-datetime format.

        Args:
            timestamp: Optional timestamp to use

        Returns:
            ETag string
        """
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        # Azure format: W/"datetime'2025-12-04T10%3A30%3A00.123456Z'"
        ts_str = timestamp.isoformat(timespec='microseconds').replace('+00:00', 'Z')
        ts_str = ts_str.replace(':', '%3A')
        return f'W/"datetime\'{ts_str}\'"'
