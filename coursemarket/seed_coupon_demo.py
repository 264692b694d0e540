from datetime import datetime, timedelta
from decimal import Decimal

from coursemarket.db import Base, SessionLocal, engine
from coursemarket.models.cart import Course
from coursemarket.models.coupon import Coupon, CouponTarget

COURSES = [
    ("A", "Python from Zero", Decimal("100.00"), "dev", "inst-1"),
    ("B", "FastAPI in Practice", Decimal("150.00"), "dev", "inst-1"),
    ("C", "Watercolor Basics", Decimal("50.00"), "art", "inst-2"),
]

Base.metadata.create_all(bind=engine)
s = SessionLocal()
try:
    for cid, title, price, cat, inst in COURSES:
        if s.get(Course, cid) is None:
            s.add(Course(id=cid, title=title, price=price, category_id=cat, instructor_id=inst))

    now = datetime.utcnow()
    demo = [
        Coupon(
            code="SAVE20",
            title="20% off everything",
            type="PERCENTAGE",
            value=Decimal("20"),
            usage_limit=100,
            used_count=0,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=30),
            applicable_to="ALL_COURSES",
            is_active=True,
        ),
        Coupon(
            code="INSTR10",
            title="30 off selected courses",
            type="FIXED_AMOUNT",
            value=Decimal("30.00"),
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=30),
            applicable_to="SPECIFIC_COURSES",
            is_active=True,
            targets=[CouponTarget(ref_id="A"), CouponTarget(ref_id="B")],
        ),
    ]
    for c in demo:
        if s.query(Coupon).filter_by(code=c.code).first() is None:
            s.add(c)
    s.commit()
    print("Seed coupons:", ", ".join(c.code for c in demo))
finally:
    s.close()
