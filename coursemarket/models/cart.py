from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db import Base


class Course(Base):
    __tablename__ = "courses"
    id = Column(String(64), primary_key=True)
    title = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    category_id = Column(String(64), index=True)
    instructor_id = Column(String(64), index=True)


class CartItem(Base):
    __tablename__ = "cart_items"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    course_id = Column(String(64), ForeignKey("courses.id"), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # precio al momento de agregar
    added_at = Column(DateTime, default=datetime.utcnow)

    course = relationship("Course", lazy="joined")

    # AUTOINCREMENT: un line_id borrado nunca vuelve a asignarse
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_cart_user_course"),
        {"sqlite_autoincrement": True},
    )
