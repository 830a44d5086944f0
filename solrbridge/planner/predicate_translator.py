from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Sequence

from solrbridge.models.catalog import FieldCatalogEntry
from solrbridge.models.plan import (
    And,
    Comparison,
    ComparisonOperator,
    Constant,
    FieldRef,
    Predicate,
)

# names outside this set would need escaping inside a field:value clause
_SAFE_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True, slots=True)
class TranslatedFilter:
    expression: str
    fields: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class NotTranslatable:
    reason: str


class _Untranslatable(Exception):
    pass


def translate_predicate(
    predicate: Predicate,
    fields: Sequence[FieldCatalogEntry | str],
) -> TranslatedFilter | NotTranslatable:
    """
    Translate a predicate into Solr standard query syntax.

    Only field-vs-literal comparisons and one conjunction of them are accepted. Anything else is
    reported as NotTranslatable and must be applied, in full, after the rows are read.
    """
    entries = [FieldCatalogEntry(name=item) if isinstance(item, str) else item for item in fields]
    try:
        terms = _conjunction_terms(predicate)
        clauses: list[str] = []
        referenced: list[str] = []
        for term in terms:
            name, clause = _translate_comparison(term, entries)
            clauses.append(clause)
            if name not in referenced:
                referenced.append(name)
    except _Untranslatable as exc:
        return NotTranslatable(reason=str(exc))
    return TranslatedFilter(expression=" AND ".join(clauses), fields=tuple(referenced))


def quote_literal(value: Any) -> str:
    """Render a literal so the remote parser always reads it as a single opaque value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and not math.isfinite(value):
            raise _Untranslatable(f"Non-finite literal {value!r}.")
        text = str(value)
        # a leading "-" is the prohibit operator unless the term is quoted
        return f'"{text}"' if text.startswith("-") else text
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    raise _Untranslatable(f"Unsupported literal type {type(value).__name__}.")


def _conjunction_terms(predicate: Predicate) -> list[Comparison]:
    match predicate:
        case Comparison():
            return [predicate]
        case And(terms=terms) if terms:
            flattened: list[Comparison] = []
            for term in terms:
                match term:
                    case Comparison():
                        flattened.append(term)
                    case And():
                        flattened.extend(_conjunction_terms(term))
                    case _:
                        raise _Untranslatable(f"Conjunction contains a {type(term).__name__} term.")
            return flattened
        case And():
            raise _Untranslatable("Empty conjunction.")
        case _:
            raise _Untranslatable(f"{type(predicate).__name__} predicates are not pushed down.")


def _translate_comparison(term: Comparison, entries: list[FieldCatalogEntry]) -> tuple[str, str]:
    match (term.left, term.right):
        case (FieldRef(), FieldRef()):
            raise _Untranslatable("Field-to-field comparisons are not supported remotely.")
        case (FieldRef(index=index), Constant(value=value)):
            op = term.op
        case (Constant(value=value), FieldRef(index=index)):
            op = term.op.flipped()
        case _:
            raise _Untranslatable("Comparison must reference exactly one field.")

    if value is None:
        raise _Untranslatable("Comparisons with NULL never match and are left to the caller.")
    entry = entries[index]
    if entry.multi_valued:
        raise _Untranslatable(f"Field '{entry.name}' is multi-valued.")
    if not _SAFE_FIELD_NAME.match(entry.name):
        raise _Untranslatable(f"Field name '{entry.name}' cannot be referenced in a filter.")

    name = entry.name
    literal = quote_literal(value)
    match op:
        case ComparisonOperator.EQ:
            clause = f"{name}:{literal}"
        case ComparisonOperator.NE:
            # requiring the field keeps NULL <> x from matching
            clause = f"({name}:* AND NOT {name}:{literal})"
        case ComparisonOperator.LT:
            clause = f"{name}:{{* TO {literal}}}"
        case ComparisonOperator.LE:
            clause = f"{name}:[* TO {literal}]"
        case ComparisonOperator.GT:
            clause = f"{name}:{{{literal} TO *}}"
        case ComparisonOperator.GE:
            clause = f"{name}:[{literal} TO *]"
        case _:
            raise _Untranslatable(f"Unsupported operator {op!r}.")
    return name, clause
