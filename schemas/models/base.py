"""
Base model for all MongoDB document models.

PyObjectId handles the mismatch between BSON ObjectId and Pydantic v2.
MongoBaseModel provides to_mongo() / from_mongo() for round-tripping between
Python objects and raw MongoDB dicts, and normalises every datetime it reads
to timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler, field_validator
from pydantic_core import core_schema

from shared.datetime_utils import ensure_utc


class PyObjectId(ObjectId):
    """BSON ObjectId that Pydantic v2 knows how to validate and serialize."""

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                cls._serialize, info_arg=True
            ),
        )

    @staticmethod
    def _serialize(value: ObjectId, info: core_schema.SerializationInfo) -> Any:
        # Raw ObjectId for pymongo, string for JSON responses
        return str(value) if info.mode_is_json() else value

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")


def to_object_id(value: Any) -> ObjectId:
    """Coerce *value* to an ObjectId, raising bson's InvalidId when malformed."""
    if isinstance(value, ObjectId):
        return value
    return ObjectId(str(value))


class MongoBaseModel(BaseModel):
    """
    Base for all document models.

    to_mongo()  — converts model → dict suitable for pymongo insert/update
    from_mongo() — converts raw pymongo dict → model instance (returns None
                    gracefully when passed None)
    """

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    @field_validator("*", mode="after")
    @classmethod
    def _utc_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value

    def to_mongo(self) -> dict:
        """Return a dict ready for MongoDB insertion.

        ObjectIds stay ObjectIds; a None ``_id`` is dropped so MongoDB
        generates one.
        """
        data = self.model_dump(by_alias=True, exclude_none=False)
        if data.get("_id") is None:
            data.pop("_id", None)
        return data

    @classmethod
    def from_mongo(cls, data: Optional[dict]):
        """Build a model instance from a raw MongoDB document dict.

        Returns None when data is None (e.g. find_one returns None).
        """
        if data is None:
            return None
        return cls.model_validate(data)
