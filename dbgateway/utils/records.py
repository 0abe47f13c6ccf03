"""Validation of the record payloads accepted by insert, update and delete."""
from typing import Any, Dict, List, Tuple, Union

from dbgateway.core.exceptions import ValidationError


def normalize_records(
    data: Union[Dict[str, Any], List[Dict[str, Any]]]
) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Coerce insert payloads to a list of records and their column names.

    Columns come from the first record; later records are assumed to carry
    the same keys and missing values insert as NULL.

    Raises:
        ValidationError: data is empty, not a record, or not a list of records
    """
    if isinstance(data, dict):
        records = [data]
    elif isinstance(data, list):
        records = data
    else:
        raise ValidationError("data must be an object or a list of objects")

    if not records:
        raise ValidationError("data must contain at least one record")
    if not all(isinstance(record, dict) for record in records):
        raise ValidationError("every record in data must be an object")

    columns = list(records[0].keys())
    if not columns:
        raise ValidationError("records must contain at least one column")
    return records, columns


def require_mapping(value: Any, name: str) -> Dict[str, Any]:
    """Reject a missing, non-object or empty `data` / `where` argument."""
    if not isinstance(value, dict):
        raise ValidationError(f"{name} must be an object")
    if not value:
        raise ValidationError(f"{name} must not be empty")
    return value
