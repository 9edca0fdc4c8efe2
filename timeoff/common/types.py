"""Custom SQLAlchemy column types."""

import enum
from typing import Optional, Type

import sqlalchemy as sa
from sqlalchemy.types import TypeDecorator


class IntEnumType(TypeDecorator):
    """Store an ``IntEnum`` as its integer code, load it back as the member."""

    impl = sa.SmallInteger
    cache_ok = True

    def __init__(self, enum_class: Type[enum.IntEnum], *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect) -> Optional[int]:
        if value is None:
            return None
        return int(self.enum_class(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_class(value)
