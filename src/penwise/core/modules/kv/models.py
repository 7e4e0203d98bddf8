"""Write policies for the key-value store."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class ArrayAction(StrEnum):
    """What to do with an array-valued key when a value is written."""

    APPEND = "append"
    REPLACE = "replace"
    DELETE = "delete"


class FindMode(StrEnum):
    MANY = "many"
    ONE = "one"


class DataActions(BaseModel):
    """Collection semantics for a write.

    The stored key is always ``<key>-<value[unique_key]>``.
    """

    set_as_array: bool = False
    action_if_exists: ArrayAction = ArrayAction.APPEND
    unique_key: str | None = None


class SetParams(BaseModel):
    """A KV write, optionally mirrored into the document store."""

    key: str
    value: dict[str, Any]
    expiry: int | None = None  # seconds
    db_operation: bool = False
    operation_name: str | None = None  # "create" or "update", used with db_operation
    data_actions: DataActions | None = None
