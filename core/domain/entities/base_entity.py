from __future__ import annotations

from typing import Any, Dict, Optional, Type, TypeVar

from bson.decimal128 import Decimal128
from pydantic import BaseModel, ConfigDict

E = TypeVar("E", bound="MongoEntity")


def _from_bson(value: Any) -> Any:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return value


class MongoEntity(BaseModel):
    """
    Base entity for Mongo-backed documents.

    - Maps Mongo's `_id` to `id` (string).
    - Carries common timestamps.
    - Converts Decimal128 back to Decimal so money fields never pass through float.
    - Accepts extra fields to avoid breaking on forward-compatible schema changes.
    """

    id: Optional[str] = None  # maps _id
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra="allow",
        use_enum_values=True,
    )

    @classmethod
    def from_mongo(cls: Type[E], doc: Optional[dict[str, Any]]) -> Optional[E]:
        """
        Convert a MongoDB document into a strongly-typed entity.

        Args:
            doc: Raw MongoDB dict (may include `_id`).

        Returns:
            An entity instance or None if doc is falsy.
        """
        if not doc:
            return None
        data = {k: _from_bson(v) for k, v in doc.items()}
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON-safe dict for HTTP payloads, cache entries and logging.
        """
        return self.model_dump(mode="json", exclude_none=True)
