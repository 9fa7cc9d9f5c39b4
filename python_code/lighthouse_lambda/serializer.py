"""Serialization of normalized records for the warehouse."""

import json
from typing import Any, List, Mapping, Sequence, Union

from mypy_boto3_redshift_data.type_defs import SqlParameterTypeDef

from .model import NormalizedRecord

# Column types that are stored as JSON (Redshift SUPER) rather than scalars.
NESTED_TYPES = ("RECORD", "STRUCT")


def to_ndjson(records: Union[NormalizedRecord, Sequence[NormalizedRecord]]) -> str:
    """Converts one record or a list of records to newline-delimited JSON."""
    if isinstance(records, Mapping):
        records = [records]
    return "".join(json.dumps(record, separators=(",", ":")) + "\n" for record in records)


def is_nested(field: Mapping[str, Any]) -> bool:
    return field["type"] in NESTED_TYPES or field.get("mode") == "REPEATED"


def to_insert_parameters(
    record: Mapping[str, Any], fields: Sequence[Mapping[str, Any]]
) -> List[SqlParameterTypeDef]:
    """
    Builds the named parameters for a single-row insert.

    The Data API only accepts non-empty string parameter values, so scalar
    columns are sent as text and nested or repeated columns as JSON text (the
    insert statement wraps those in JSON_PARSE). Scalar columns that are None
    or empty get no parameter at all; the statement writes a NULL literal
    for them.
    """
    parameters: List[SqlParameterTypeDef] = []
    for field in fields:
        value = record.get(field["name"])
        if is_nested(field):
            text = json.dumps(value, separators=(",", ":"))
        elif value is None or value == "":
            continue
        elif isinstance(value, bool):
            text = "true" if value else "false"
        else:
            text = str(value)
        parameters.append({"name": field["name"], "value": text})
    return parameters
