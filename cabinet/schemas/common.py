"""Shared schema building blocks."""

from datetime import date, time
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from cabinet.core.slots import format_slot_time, format_wire_date, parse_slot_time, parse_wire_date


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


WireDate = Annotated[
    date,
    BeforeValidator(parse_wire_date),
    PlainSerializer(format_wire_date, return_type=str),
]

SlotTime = Annotated[
    time,
    BeforeValidator(parse_slot_time),
    PlainSerializer(format_slot_time, return_type=str),
]

Money = Annotated[
    Decimal,
    PlainSerializer(lambda value: f"{value:.2f}", return_type=str),
]
