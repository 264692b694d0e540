from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursemarket.models.cart import CartItem, Course
from coursemarket.services.coupon_session import on_cart_changed
from coursemarket.services.scope import CartLine
from coursemarket.utils.cache import Cache


class CourseNotFound(LookupError):
    pass


class CartService:
    """Cart collaborator: the coupon engine reads lines(), never writes."""

    def __init__(self, db: Session, cache: Cache):
        self.db = db
        self.cache = cache

    def _items(self, user_id: str) -> List[CartItem]:
        stmt = (
            select(CartItem)
            .where(CartItem.user_id == str(user_id))
            .order_by(CartItem.id)
            .execution_options(populate_existing=True)
        )
        return list(self.db.execute(stmt).scalars().unique())

    def lines(self, user_id: str) -> List[CartLine]:
        return [
            CartLine(
                line_id=it.id,
                course_id=it.course_id,
                price=Decimal(str(it.price)),
                category_id=it.course.category_id if it.course else None,
                instructor_id=it.course.instructor_id if it.course else None,
            )
            for it in self._items(user_id)
        ]

    def _changed(self, user_id: str) -> None:
        remaining = [ln.line_id for ln in self.lines(user_id)]
        self.db.rollback()
        on_cart_changed(self.cache, user_id, remaining)

    def _add_one(self, user_id: str, course_id: str) -> Optional[CartItem]:
        course = self.db.get(Course, course_id)
        if course is None:
            raise CourseNotFound(course_id)
        exists = self.db.execute(
            select(CartItem.id).where(
                CartItem.user_id == str(user_id), CartItem.course_id == course_id
            )
        ).first()
        if exists:
            return None
        item = CartItem(user_id=str(user_id), course_id=course_id, price=course.price)
        self.db.add(item)
        return item

    def add(self, user_id: str, course_id: str) -> Optional[CartItem]:
        """None when the course was already in the cart."""
        try:
            item = self._add_one(user_id, course_id)
            self.db.commit()
        except IntegrityError:
            # otro request agregó el mismo curso
            self.db.rollback()
            return None
        except Exception:
            self.db.rollback()
            raise
        if item is not None:
            self._changed(user_id)
        return item

    def bulk_add(self, user_id: str, course_ids: Iterable[str]) -> Dict[str, List[str]]:
        added, skipped, missing = [], [], []
        try:
            for cid in dict.fromkeys(course_ids):
                try:
                    item = self._add_one(user_id, cid)
                except CourseNotFound:
                    missing.append(cid)
                    continue
                (added if item is not None else skipped).append(cid)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if added:
            self._changed(user_id)
        return {"added": added, "skipped": skipped, "not_found": missing}

    def remove(self, user_id: str, course_id: str) -> bool:
        try:
            item = self.db.execute(
                select(CartItem).where(
                    CartItem.user_id == str(user_id), CartItem.course_id == course_id
                )
            ).scalars().first()
            if item is None:
                self.db.rollback()
                return False
            self.db.delete(item)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._changed(user_id)
        return True

    def sync(self, user_id: str, course_ids: Iterable[str]) -> Dict[str, List[str]]:
        """Make the cart hold exactly course_ids (unknown courses are reported)."""
        wanted = list(dict.fromkeys(course_ids))
        added, removed, missing = [], [], []
        try:
            for it in self._items(user_id):
                if it.course_id not in wanted:
                    removed.append(it.course_id)
                    self.db.delete(it)
            self.db.flush()
            for cid in wanted:
                try:
                    if self._add_one(user_id, cid) is not None:
                        added.append(cid)
                except CourseNotFound:
                    missing.append(cid)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if added or removed:
            self._changed(user_id)
        return {"added": added, "removed": removed, "not_found": missing}

    def clear(self, user_id: str) -> int:
        try:
            items = self._items(user_id)
            for it in items:
                self.db.delete(it)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._changed(user_id)
        return len(items)
