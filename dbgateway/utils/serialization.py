"""Conversion of driver values into JSON-safe values."""
import base64
from datetime import datetime, date, time
from decimal import Decimal
from typing import Any, Dict
from uuid import UUID

from bson import ObjectId, Decimal128


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    elif isinstance(value, (datetime, date, time)):
        return value.isoformat()
    elif isinstance(value, (Decimal, Decimal128)):
        return str(value)
    elif isinstance(value, UUID):
        return str(value)
    elif isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    elif isinstance(value, dict):
        return serialize_document(value)
    elif isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a row or document for JSON compatibility."""
    return {key: serialize_value(value) for key, value in doc.items()}
