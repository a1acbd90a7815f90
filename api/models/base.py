# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime
from typing import Any, Dict
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


class ApiModel(BaseModel):
    """Base for embedded records and request bodies using camelCase on the wire."""

    model_config = ConfigDict(
        # Accept both snake_case attribute names and camelCase aliases
        populate_by_name=True,
        alias_generator=to_camel,
        use_enum_values=True
    )

    def to_camel_dict(self, exclude_none: bool = False) -> Dict[str, Any]:
        """Dump using camelCase aliases."""
        return self.model_dump(by_alias=True, exclude_none=exclude_none)


class BaseEntity(BaseModel):
    """Base entity with common fields for all persisted domain objects."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Persisted and serialized field names are camelCase
        alias_generator=to_camel,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Arbitrary types allowed
        arbitrary_types_allowed=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def update_timestamp(self) -> None:
        """Refresh the update timestamp."""
        self.updated_at = datetime.utcnow()

    def to_document(self) -> Dict[str, Any]:
        """Convert the entity into a MongoDB document keyed by ObjectId."""
        document = self.model_dump(by_alias=True, exclude={"id"})
        document["_id"] = ObjectId(self.id)
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        """Build the entity from a stored document (``_id`` or ``id`` key)."""
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)
