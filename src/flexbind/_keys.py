from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class InjectionKey:
    """Identity of a registration: service type plus optional name and tag.

    ``None`` stands for the default qualifier. Two keys are equal only when
    all three components match.
    """

    service_type: Any
    name: str | None = None
    tag: str | None = None

    def __str__(self) -> str:
        return f"{_type_name(self.service_type)} (name={self.name or 'default'}, tag={self.tag or 'default'})"


def _type_name(tp: Any) -> str:
    return getattr(tp, "__qualname__", None) or repr(tp)
