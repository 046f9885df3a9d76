"""Register name to PTX type mapping and register declarations."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import Optional

from ptxgen.ptx_type import PTXType


class TypeMap:
    """Maps cleaned register names to their PTX type."""

    def __init__(self) -> None:
        self._types: dict[str, PTXType] = {}

    def insert(self, var: str, ty: PTXType) -> None:
        """Record ``ty`` for ``var``, replacing any earlier type."""
        self._types[var] = ty

    def get(self, var: str) -> Optional[PTXType]:
        """The type of ``var``, or None if it has none."""
        return self._types.get(var)

    @staticmethod
    def dominant_type(types: Iterable[PTXType]) -> Optional[PTXType]:
        """The single type that best represents ``types``, if any."""
        types = list(types)
        if not types:
            return None
        for uniform in (PTXType.F32, PTXType.S32, PTXType.PRED):
            if all(t is uniform for t in types):
                return uniform
        if PTXType.F32 in types:
            return PTXType.F32
        if PTXType.S32 in types:
            return PTXType.S32
        return None

    def all(self) -> dict[str, PTXType]:
        """A copy of every name-to-type entry."""
        return dict(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, var: object) -> bool:
        return var in self._types


def declare_registers_from_typemap(type_map: TypeMap) -> list[str]:
    """One ``.reg`` line per type, types in enum order, names sorted."""
    by_type: dict[PTXType, list[str]] = defaultdict(list)
    for name, ty in type_map.all().items():
        by_type[ty].append(name)

    return [
        f".reg {ty.as_str()} {', '.join(f'%{name}' for name in sorted(by_type[ty]))};"
        for ty in sorted(by_type)
    ]