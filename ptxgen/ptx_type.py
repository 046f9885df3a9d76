"""PTX register types."""

from __future__ import annotations

from enum import Enum
from functools import total_ordering


@total_ordering
class PTXType(Enum):
    """A PTX register type; the value is its spelling in PTX code."""

    S32 = "s32"
    S64 = "s64"
    F32 = "f32"
    F64 = "f64"
    PRED = "pred"
    PTR = "u64"

    @classmethod
    def from_str(cls, s: str) -> PTXType:
        """Parse a type name; anything unknown falls back to ``S32``."""
        return _PARSE.get(s, cls.S32)

    def as_str(self) -> str:
        """The spelling used in PTX code (pointers are 64-bit integers)."""
        return self.value

    def dominant_with(self, other: PTXType) -> PTXType:
        """The type that wins when both are used for the same register."""
        for candidate in _DOMINANCE:
            if candidate is self or candidate is other:
                return candidate
        return PTXType.S32

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PTXType):
            return NotImplemented
        members = list(PTXType)
        return members.index(self) < members.index(other)

    def __str__(self) -> str:
        return self.value


_PARSE = {
    "s32": PTXType.S32,
    "f32": PTXType.F32,
    "pred": PTXType.PRED,
    "ptr": PTXType.PTR,
}

_DOMINANCE = (PTXType.PRED, PTXType.PTR, PTXType.F64, PTXType.F32, PTXType.S64)