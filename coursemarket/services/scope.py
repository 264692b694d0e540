from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import FrozenSet, Iterable, List, Optional, Union


@dataclass(frozen=True)
class CartLine:
    """Read-only view of one cart row as the discount engine sees it."""

    line_id: int
    course_id: str
    price: Decimal
    category_id: Optional[str] = None
    instructor_id: Optional[str] = None


@dataclass(frozen=True)
class AllCourses:
    pass


@dataclass(frozen=True)
class SpecificCourses:
    course_ids: FrozenSet[str]


@dataclass(frozen=True)
class Category:
    category_ids: FrozenSet[str]


@dataclass(frozen=True)
class Instructor:
    instructor_ids: FrozenSet[str]


Scope = Union[AllCourses, SpecificCourses, Category, Instructor]


def scope_of(coupon) -> Scope:
    kind = (coupon.applicable_to or "ALL_COURSES").upper()
    ids = frozenset(str(i) for i in coupon.target_ids)
    if kind == "ALL_COURSES":
        return AllCourses()
    if kind == "SPECIFIC_COURSES":
        return SpecificCourses(ids)
    if kind == "CATEGORY":
        return Category(ids)
    if kind == "INSTRUCTOR":
        return Instructor(ids)
    raise ValueError(f"unknown applicable_to: {coupon.applicable_to!r}")


def line_matches(scope: Scope, line: CartLine) -> bool:
    if isinstance(scope, AllCourses):
        return True
    if isinstance(scope, SpecificCourses):
        return line.course_id in scope.course_ids
    if isinstance(scope, Category):
        return line.category_id is not None and line.category_id in scope.category_ids
    if isinstance(scope, Instructor):
        return line.instructor_id is not None and line.instructor_id in scope.instructor_ids
    raise TypeError(f"unsupported scope: {scope!r}")


def applicable_lines(scope: Scope, lines: Iterable[CartLine]) -> List[CartLine]:
    return [ln for ln in lines if line_matches(scope, ln)]
