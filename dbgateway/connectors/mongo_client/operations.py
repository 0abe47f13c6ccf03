"""
MongoDB query operations.

A query is a JSON object naming a collection and an action, e.g.
``{"collection": "users", "action": "find", "filter": {"age": {"$gt": 25}}}``.
Each action is its own model carrying only the fields it accepts; the union
is discriminated on `action` and validated before any collection is touched.
MongoDB Extended JSON (``{"$oid": ...}``, ``{"$date": ...}``) is accepted.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from bson import json_util
from bson.errors import BSONError
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from dbgateway.core.exceptions import MalformedQueryError, UnsupportedOperationError


class MongoOperation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    collection: str = Field(min_length=1)
    # keyword arguments passed through to the pymongo collection method
    options: Dict[str, Any] = Field(default_factory=dict)


class FindOperation(MongoOperation):
    action: Literal["find"]
    filter: Dict[str, Any] = Field(default_factory=dict)
    projection: Optional[Dict[str, Any]] = None
    sort: Optional[Dict[str, int]] = None
    skip: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=0)


class FindOneOperation(MongoOperation):
    action: Literal["findOne"]
    filter: Dict[str, Any] = Field(default_factory=dict)
    projection: Optional[Dict[str, Any]] = None


class InsertOneOperation(MongoOperation):
    action: Literal["insertOne"]
    document: Dict[str, Any]


class InsertManyOperation(MongoOperation):
    action: Literal["insertMany"]
    documents: List[Dict[str, Any]] = Field(min_length=1)


class _UpdateOperation(MongoOperation):
    filter: Dict[str, Any] = Field(default_factory=dict)
    # an update document, or an aggregation pipeline of stages
    update: Union[Dict[str, Any], List[Dict[str, Any]]]
    upsert: bool = False

    @field_validator("update")
    @classmethod
    def update_operators_only(
        cls, value: Union[Dict[str, Any], List[Dict[str, Any]]]
    ) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
        if not value:
            raise ValueError("update must not be empty")
        documents = value if isinstance(value, list) else [value]
        plain_keys = [key for document in documents for key in document if not key.startswith("$")]
        if plain_keys:
            raise ValueError(
                f"update must use update operators such as $set, got {', '.join(plain_keys)}"
            )
        return value


class UpdateOneOperation(_UpdateOperation):
    action: Literal["updateOne"]


class UpdateManyOperation(_UpdateOperation):
    action: Literal["updateMany"]


class DeleteOneOperation(MongoOperation):
    action: Literal["deleteOne"]
    filter: Dict[str, Any] = Field(default_factory=dict)


class DeleteManyOperation(MongoOperation):
    action: Literal["deleteMany"]
    filter: Dict[str, Any] = Field(default_factory=dict)


class AggregateOperation(MongoOperation):
    action: Literal["aggregate"]
    pipeline: List[Dict[str, Any]]


class CountOperation(MongoOperation):
    action: Literal["count"]
    filter: Dict[str, Any] = Field(default_factory=dict)


class DistinctOperation(MongoOperation):
    action: Literal["distinct"]
    field: str = Field(min_length=1)
    filter: Dict[str, Any] = Field(default_factory=dict)


MongoQuery = Annotated[
    Union[
        FindOperation,
        FindOneOperation,
        InsertOneOperation,
        InsertManyOperation,
        UpdateOneOperation,
        UpdateManyOperation,
        DeleteOneOperation,
        DeleteManyOperation,
        AggregateOperation,
        CountOperation,
        DistinctOperation,
    ],
    Field(discriminator="action"),
]

SUPPORTED_ACTIONS = (
    "find", "findOne", "insertOne", "insertMany", "updateOne", "updateMany",
    "deleteOne", "deleteMany", "aggregate", "count", "distinct",
)

_query_adapter = TypeAdapter(MongoQuery)


def _describe_errors(error: PydanticValidationError) -> str:
    parts = []
    for detail in error.errors():
        # the first loc entry is the discriminator tag
        location = ".".join(str(part) for part in detail["loc"][1:])
        parts.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(parts)


def parse_operation(query: Union[str, Dict[str, Any]]) -> MongoQuery:
    """
    Parse and validate a MongoDB query operation.

    Args:
        query: JSON text (Extended JSON allowed) or an already decoded object

    Returns:
        The validated operation model for the query's action

    Raises:
        MalformedQueryError: invalid JSON, not an object, no collection, or
            fields that do not fit the action
        UnsupportedOperationError: the action is not one of SUPPORTED_ACTIONS
    """
    if isinstance(query, str):
        try:
            payload = json_util.loads(query)
        except (ValueError, TypeError, BSONError) as e:
            raise MalformedQueryError(f"MongoDB: query is not valid JSON: {e}") from e
    else:
        payload = query

    if not isinstance(payload, dict):
        raise MalformedQueryError("MongoDB: query must be a JSON object")

    collection = payload.get("collection")
    if not isinstance(collection, str) or not collection.strip():
        raise MalformedQueryError("MongoDB: query must name a collection")

    action = payload.get("action")
    if action not in SUPPORTED_ACTIONS:
        raise UnsupportedOperationError(f"MongoDB: unsupported action '{action}'")

    try:
        return _query_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise MalformedQueryError(
            f"MongoDB: invalid {action} operation: {_describe_errors(e)}"
        ) from e
