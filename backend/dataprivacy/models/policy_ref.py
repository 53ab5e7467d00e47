"""
Policy references

A purpose or category assignment is one of three things: not configured,
explicitly inherited from the parent scope, or a concrete record id.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union


class PolicyRefKind(str, Enum):
    """States of a purpose/category assignment"""
    UNSET = "unset"
    INHERIT = "inherit"
    VALUE = "value"


@dataclass(frozen=True)
class PolicyRef:
    """Tagged purpose/category reference: Unset | Inherit | Value(id)"""
    kind: PolicyRefKind
    value: Optional[int] = None

    def __post_init__(self):
        if self.kind == PolicyRefKind.VALUE:
            if self.value is None or isinstance(self.value, bool) or int(self.value) <= 0:
                raise ValueError(f"Invalid policy id: {self.value!r}")
        elif self.value is not None:
            raise ValueError(f"{self.kind.value} references cannot carry an id")

    @classmethod
    def unset(cls) -> "PolicyRef":
        return UNSET

    @classmethod
    def inherit(cls) -> "PolicyRef":
        return INHERIT

    @classmethod
    def of(cls, record_id: int) -> "PolicyRef":
        if isinstance(record_id, bool):
            raise ValueError(f"Invalid policy id: {record_id!r}")
        return cls(PolicyRefKind.VALUE, int(record_id))

    @classmethod
    def coerce(cls, value: Union["PolicyRef", int, None]) -> "PolicyRef":
        """Accept a PolicyRef, a plain id, or None (unset)"""
        if isinstance(value, PolicyRef):
            return value
        if value is None:
            return UNSET
        return cls.of(value)

    @classmethod
    def from_columns(cls, record_id: Optional[int], inherits: bool) -> "PolicyRef":
        if inherits:
            return INHERIT
        if record_id is None:
            return UNSET
        return cls.of(record_id)

    def to_columns(self) -> Tuple[Optional[int], bool]:
        """(id column, inherit flag) pair used for persistence"""
        return self.value, self.kind == PolicyRefKind.INHERIT

    @property
    def is_unset(self) -> bool:
        return self.kind == PolicyRefKind.UNSET

    @property
    def is_inherit(self) -> bool:
        return self.kind == PolicyRefKind.INHERIT

    @property
    def is_value(self) -> bool:
        return self.kind == PolicyRefKind.VALUE

    @property
    def defers(self) -> bool:
        """True when resolution must continue to the next step"""
        return self.kind != PolicyRefKind.VALUE

    def __repr__(self) -> str:
        if self.is_value:
            return f"PolicyRef.of({self.value})"
        return f"PolicyRef.{self.kind.value}()"


UNSET = PolicyRef(PolicyRefKind.UNSET)
INHERIT = PolicyRef(PolicyRefKind.INHERIT)
