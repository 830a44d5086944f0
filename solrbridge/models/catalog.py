from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator

from pydantic import BaseModel, ConfigDict


class LogicalType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    ANY = "any"


class FieldCatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    logical_type: LogicalType = LogicalType.ANY
    multi_valued: bool = False


@dataclass(frozen=True, slots=True)
class FieldCatalog:
    """Immutable field list of one collection; every field is nullable in a schemaless store."""

    collection: str
    entries: tuple[FieldCatalogEntry, ...]

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for entry in self.entries:
            if entry.name in seen:
                raise ValueError(f"Duplicate field '{entry.name}' in catalog for '{self.collection}'.")
            seen.add(entry.name)

    def __iter__(self) -> Iterator[FieldCatalogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: object) -> bool:
        return any(entry.name == name for entry in self.entries)

    @property
    def names(self) -> list[str]:
        return [entry.name for entry in self.entries]

    def field(self, name: str) -> FieldCatalogEntry:
        for entry in self.entries:
            if entry.name == name:
                return entry
        raise KeyError(f"Unknown field '{name}' in collection '{self.collection}'.")

    def select(self, names: list[str]) -> tuple[FieldCatalogEntry, ...]:
        return tuple(self.field(name) for name in names)
