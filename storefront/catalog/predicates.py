"""
Backend-agnostic predicate tree for catalog queries.

Nodes are frozen dataclasses, so a built tree is immutable and can be
handed to the storage adapter any number of times (page fetch and total
count) with identical results. Field names are logical ("price",
"size_stock.M", "tags"); the adapter maps them to its own columns.
"""
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union


@dataclass(frozen=True)
class MatchAll:
    """Always true."""


@dataclass(frozen=True)
class MatchNone:
    """Always false. Produced when a filter references something that does not exist."""


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class In:
    field: str
    values: Tuple[Any, ...]


COMPARE_OPS = ("gt", "gte", "lt", "lte")


@dataclass(frozen=True)
class Compare:
    """field <op> value, op is one of COMPARE_OPS."""
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in COMPARE_OPS:
            raise ValueError(f"Unknown comparison operator: {self.op}")


@dataclass(frozen=True)
class Range:
    """Inclusive range; either bound may be open."""
    field: str
    low: Optional[float] = None
    high: Optional[float] = None


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match."""
    field: str
    text: str


@dataclass(frozen=True)
class And:
    children: Tuple["Predicate", ...]


@dataclass(frozen=True)
class Or:
    children: Tuple["Predicate", ...]


Predicate = Union[MatchAll, MatchNone, Eq, In, Compare, Range, Contains, And, Or]

MATCH_ALL = MatchAll()
MATCH_NONE = MatchNone()


def and_(*predicates: Predicate) -> Predicate:
    """Conjunction with flattening. MatchNone wins, MatchAll is dropped."""
    children = []
    for predicate in predicates:
        if isinstance(predicate, MatchNone):
            return MATCH_NONE
        if isinstance(predicate, MatchAll):
            continue
        if isinstance(predicate, And):
            children.extend(predicate.children)
        else:
            children.append(predicate)
    if not children:
        return MATCH_ALL
    if len(children) == 1:
        return children[0]
    return And(tuple(children))


def or_(*predicates: Predicate) -> Predicate:
    """Disjunction with flattening. MatchAll wins, MatchNone is dropped."""
    children = []
    for predicate in predicates:
        if isinstance(predicate, MatchAll):
            return MATCH_ALL
        if isinstance(predicate, MatchNone):
            continue
        if isinstance(predicate, Or):
            children.extend(predicate.children)
        elif predicate not in children:
            children.append(predicate)
    if not children:
        return MATCH_NONE
    if len(children) == 1:
        return children[0]
    return Or(tuple(children))


def describe(predicate: Predicate) -> str:
    """Compact human-readable rendering for logs."""
    if isinstance(predicate, MatchAll):
        return "TRUE"
    if isinstance(predicate, MatchNone):
        return "FALSE"
    if isinstance(predicate, Eq):
        return f"{predicate.field} = {predicate.value!r}"
    if isinstance(predicate, In):
        return f"{predicate.field} IN {list(predicate.values)!r}"
    if isinstance(predicate, Compare):
        return f"{predicate.field} {predicate.op} {predicate.value!r}"
    if isinstance(predicate, Range):
        return f"{predicate.field} IN [{predicate.low}, {predicate.high}]"
    if isinstance(predicate, Contains):
        return f"{predicate.field} ~ {predicate.text!r}"
    if isinstance(predicate, And):
        return "(" + " AND ".join(describe(c) for c in predicate.children) + ")"
    if isinstance(predicate, Or):
        return "(" + " OR ".join(describe(c) for c in predicate.children) + ")"
    raise TypeError(f"Unknown predicate node: {predicate!r}")
