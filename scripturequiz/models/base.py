from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from scripturequiz.utils.time_utils import ensure_utc


def utc_datetime(value) -> Optional[datetime]:
    """Before-validator: every stored instant is UTC"""
    return ensure_utc(value)


class Record(BaseModel):
    """Row loaded from the database. Unknown columns are ignored."""
    model_config = ConfigDict(extra="ignore", use_enum_values=False)


class CamelModel(BaseModel):
    """Response or JSON payload using camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
