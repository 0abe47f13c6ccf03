"""MongoDB connector using pymongo's asyncio client."""
import logging
from collections import defaultdict, Counter
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional, Union
from urllib.parse import quote_plus

from bson import ObjectId, Decimal128
from bson.errors import BSONError
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from dbgateway.connectors.interfaces import DatabaseConnectorInterface
from dbgateway.connectors.mongo_client.operations import parse_operation
from dbgateway.core.exceptions import DatabaseConnectionError, MalformedQueryError, QueryError
from dbgateway.utils.database_connection_schema import (
    DatabaseType, ColumnInfo, IndexInfo, TableStructure, index_type_for
)
from dbgateway.utils.records import normalize_records, require_mapping
from dbgateway.utils.serialization import serialize_document, serialize_value

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 100

_KNOWN_ARGS = ("url", "host", "server", "port", "user", "password", "database")


@dataclass
class MongoHandle:
    client: AsyncMongoClient
    database: Any
    closed: bool = False


def _type_name(value: Any) -> str:
    """Primitive type name of a sampled document value."""
    if isinstance(value, bool):
        return "boolean"
    elif isinstance(value, (int, float, Decimal, Decimal128)):
        return "number"
    elif isinstance(value, str):
        return "string"
    elif isinstance(value, datetime):
        return "date"
    elif isinstance(value, ObjectId):
        return "objectId"
    elif isinstance(value, dict):
        return "object"
    elif isinstance(value, list):
        return "array"
    elif isinstance(value, bytes):
        return "binary"
    elif value is None:
        return "null"
    return type(value).__name__


def _fields_of(documents: List[Dict[str, Any]]) -> List[str]:
    fields = []
    for document in documents:
        for key in document:
            if key not in fields:
                fields.append(key)
    return fields


def _read_result(documents: List[Dict[str, Any]]) -> Dict[str, Any]:
    rows = [serialize_document(document) for document in documents]
    return {"results": rows, "fields": _fields_of(rows), "affected_rows": len(rows)}


class MongoDBConnector(DatabaseConnectorInterface):
    """
    Connector for MongoDB.

    Collections stand in for tables. `execute_query` takes a JSON operation
    (see operations.py) instead of SQL, and table structure is inferred from
    a sample of documents.
    """

    database_type = DatabaseType.MONGODB
    dialect_name = "MongoDB"

    def _build_connection_string(self, args: Dict[str, Any]) -> str:
        if args.get("url"):
            return args["url"]

        host = args.get("host") or args.get("server") or "localhost"
        port = args.get("port") or 27017
        user = args.get("user")
        password = args.get("password")

        if user and password:
            return f"mongodb://{quote_plus(str(user))}:{quote_plus(str(password))}@{host}:{port}/"
        elif user:
            return f"mongodb://{quote_plus(str(user))}@{host}:{port}/"
        return f"mongodb://{host}:{port}/"

    async def connect(self, args: Dict[str, Any]) -> MongoHandle:
        client_options = {
            key: value for key, value in args.items() if key not in _KNOWN_ARGS
        }
        client_options.setdefault("serverSelectionTimeoutMS", 5000)

        client = None
        try:
            client = AsyncMongoClient(self._build_connection_string(args), **client_options)

            # Test connection
            await client.admin.command("ping")

            database_name = args.get("database") or client.get_default_database(default="test").name
            database = client.get_database(database_name)
        except (PyMongoError, ValueError, TypeError) as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            if client is not None:
                await client.close()
            raise DatabaseConnectionError(f"MongoDB: {e}") from e

        logger.info(f"Connected to MongoDB database: {database_name}")
        return MongoHandle(client=client, database=database)

    async def list_databases(self, handle: MongoHandle) -> List[str]:
        try:
            return await handle.client.list_database_names()
        except PyMongoError as e:
            logger.error(f"Error listing MongoDB databases: {e}")
            raise QueryError(f"MongoDB: {e}") from e

    async def list_tables(self, handle: MongoHandle) -> List[str]:
        try:
            return sorted(await handle.database.list_collection_names())
        except PyMongoError as e:
            logger.error(f"Error listing MongoDB collections: {e}")
            raise QueryError(f"MongoDB: {e}") from e

    async def get_table_structure(self, handle: MongoHandle, table_name: str) -> Dict[str, Any]:
        collection = handle.database[table_name]
        try:
            documents = await collection.find().limit(SAMPLE_SIZE).to_list()
            if not documents:
                return TableStructure(table_name=table_name).to_dict()
            index_information = await collection.index_information()
        except PyMongoError as e:
            logger.error(f"Error describing MongoDB collection {table_name}: {e}")
            raise QueryError(f"MongoDB: {e}") from e

        structure = TableStructure(
            table_name=table_name,
            columns=self._analyze_collection_schema(documents),
            indexes=self._collection_indexes(index_information),
        )
        return structure.to_dict()

    def _analyze_collection_schema(self, documents: List[Dict[str, Any]]) -> List[ColumnInfo]:
        """Infer columns from sampled documents; advisory only."""
        field_info = defaultdict(lambda: {
            'types': Counter(),
            'null_count': 0,
            'total_count': 0,
        })

        for doc in documents:
            for field, value in doc.items():
                if field == "_id":
                    continue
                field_info[field]['total_count'] += 1
                if value is None:
                    field_info[field]['null_count'] += 1
                else:
                    field_info[field]['types'][_type_name(value)] += 1

        columns = []
        for field_name, info in field_info.items():
            if len(info['types']) > 1:
                data_type = "mixed"
            elif info['types']:
                data_type = next(iter(info['types']))
            else:
                data_type = "null"

            # missing from some sampled document, or null in one
            nullable = info['null_count'] > 0 or info['total_count'] < len(documents)

            columns.append(ColumnInfo(
                name=field_name,
                type=data_type,
                nullable=nullable,
                default=None,
                primary_key=False,
            ))

        return columns

    def _collection_indexes(self, index_information: Dict[str, Dict[str, Any]]) -> List[IndexInfo]:
        indexes = []
        for name, info in index_information.items():
            primary = name == "_id_"
            unique = primary or bool(info.get("unique", False))
            indexes.append(IndexInfo(
                name=name,
                columns=[key for key, _direction in info.get("key", [])],
                unique=unique,
                type=index_type_for(name, unique, primary),
            ))
        return indexes

    async def execute_query(
        self,
        handle: MongoHandle,
        query: Union[str, Dict[str, Any]],
        params: Optional[Union[List[Any], Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        operation = parse_operation(query)
        collection = handle.database[operation.collection]
        action = operation.action
        # explicit fields win over the same keys in options
        options = dict(operation.options)

        logger.info(f"Executing MongoDB {action} on {operation.collection}")
        try:
            if action == "find":
                if operation.projection is not None:
                    options["projection"] = operation.projection
                cursor = collection.find(operation.filter, **options)
                if operation.sort:
                    cursor = cursor.sort(list(operation.sort.items()))
                if operation.skip:
                    cursor = cursor.skip(operation.skip)
                if operation.limit:
                    cursor = cursor.limit(operation.limit)
                return _read_result(await cursor.to_list())

            elif action == "findOne":
                if operation.projection is not None:
                    options["projection"] = operation.projection
                document = await collection.find_one(operation.filter, **options)
                return _read_result([document] if document is not None else [])

            elif action == "insertOne":
                result = await collection.insert_one(operation.document, **options)
                return {"affected_rows": 1, "inserted_id": serialize_value(result.inserted_id)}

            elif action == "insertMany":
                result = await collection.insert_many(operation.documents, **options)
                return {
                    "affected_rows": len(result.inserted_ids),
                    "inserted_ids": [serialize_value(i) for i in result.inserted_ids],
                }

            elif action in ("updateOne", "updateMany"):
                update = collection.update_one if action == "updateOne" else collection.update_many
                options["upsert"] = operation.upsert or bool(options.get("upsert", False))
                result = await update(operation.filter, operation.update, **options)
                shaped = {
                    "affected_rows": result.modified_count,
                    "matched_count": result.matched_count,
                    "modified_count": result.modified_count,
                }
                if result.upserted_id is not None:
                    shaped["upserted_id"] = serialize_value(result.upserted_id)
                return shaped

            elif action in ("deleteOne", "deleteMany"):
                delete = collection.delete_one if action == "deleteOne" else collection.delete_many
                result = await delete(operation.filter, **options)
                return {"affected_rows": result.deleted_count, "deleted_count": result.deleted_count}

            elif action == "aggregate":
                cursor = await collection.aggregate(operation.pipeline, **options)
                return _read_result(await cursor.to_list())

            elif action == "count":
                count = await collection.count_documents(operation.filter, **options)
                return {"count": count, "affected_rows": 0}

            # distinct yields scalar values rather than documents
            values = await collection.distinct(operation.field, operation.filter, **options)
            return {
                "results": [serialize_value(value) for value in values],
                "fields": [operation.field],
                "affected_rows": len(values),
            }

        except TypeError as e:
            # pymongo rejects unknown keyword arguments before any I/O
            raise MalformedQueryError(f"MongoDB: invalid options for {action}: {e}") from e
        except (PyMongoError, BSONError) as e:
            logger.error(f"MongoDB {action} on {operation.collection} failed: {e}")
            raise QueryError(f"MongoDB: {e}") from e

    async def insert_data(
        self,
        handle: MongoHandle,
        table_name: str,
        data: Union[Dict[str, Any], List[Dict[str, Any]]]
    ) -> Dict[str, Any]:
        records, _columns = normalize_records(data)
        collection = handle.database[table_name]
        try:
            if isinstance(data, dict):
                result = await collection.insert_one(records[0])
                inserted_ids = [result.inserted_id]
            else:
                result = await collection.insert_many(records)
                inserted_ids = result.inserted_ids
        except (PyMongoError, BSONError) as e:
            logger.error(f"MongoDB insert into {table_name} failed: {e}")
            raise QueryError(f"MongoDB: {e}") from e

        return {
            "affected_rows": len(inserted_ids),
            "inserted_ids": [serialize_value(i) for i in inserted_ids],
        }

    async def update_data(
        self,
        handle: MongoHandle,
        table_name: str,
        data: Dict[str, Any],
        where: Dict[str, Any]
    ) -> Dict[str, Any]:
        require_mapping(data, "data")
        require_mapping(where, "where")
        try:
            result = await handle.database[table_name].update_many(where, {"$set": data})
        except (PyMongoError, BSONError) as e:
            logger.error(f"MongoDB update of {table_name} failed: {e}")
            raise QueryError(f"MongoDB: {e}") from e
        return {
            "affected_rows": result.modified_count,
            "matched_count": result.matched_count,
            "modified_count": result.modified_count,
        }

    async def delete_data(self, handle: MongoHandle, table_name: str, where: Dict[str, Any]) -> Dict[str, Any]:
        require_mapping(where, "where")
        try:
            result = await handle.database[table_name].delete_many(where)
        except (PyMongoError, BSONError) as e:
            logger.error(f"MongoDB delete from {table_name} failed: {e}")
            raise QueryError(f"MongoDB: {e}") from e
        return {"affected_rows": result.deleted_count, "deleted_count": result.deleted_count}

    async def close_connection(self, handle: MongoHandle) -> None:
        if handle.closed:
            raise DatabaseConnectionError("MongoDB: connection is already closed")
        try:
            await handle.client.close()
        except Exception as e:
            logger.error(f"Error closing MongoDB connection: {e}")
            raise DatabaseConnectionError(f"MongoDB: {e}") from e
        handle.closed = True
        logger.info("Disconnected from MongoDB")
