import os
import tempfile

# La app crea tablas al importarse: apuntarla a un archivo desechable
os.environ.setdefault(
    "DB_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(prefix="coursemarket-"), "boot.db")
)

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from coursemarket.core.deps import get_clock
from coursemarket.db import Base, get_db, make_engine
from coursemarket.main import app
from coursemarket.models.cart import Course
from coursemarket.models.coupon import Coupon, CouponTarget
from coursemarket.utils.cache import MemoryCache, get_cache

NOW = datetime(2025, 6, 1, 12, 0, 0)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def Session(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(engine):
    # expire_on_commit=False: leer atributos tras commit no abre otra transacción
    s = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)()
    yield s
    s.close()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def client(Session, cache, clock):
    def _get_db():
        s = Session()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_clock] = lambda: clock
    # respuestas idempotentes guardadas en la caché del proceso
    get_cache().clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
    get_cache().clear()


@pytest.fixture
def make_course(db):
    def _make(course_id, price, category_id=None, instructor_id=None, title=None):
        c = Course(
            id=course_id,
            title=title or f"Course {course_id}",
            price=Decimal(str(price)),
            category_id=category_id,
            instructor_id=instructor_id,
        )
        db.add(c)
        db.commit()
        db.expunge(c)
        return c

    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE20", targets=(), **kw):
        fields = dict(
            title=f"{code} coupon",
            type="PERCENTAGE",
            value=Decimal("20"),
            used_count=0,
            is_active=True,
            valid_from=NOW - timedelta(days=1),
            valid_until=NOW + timedelta(days=30),
            applicable_to="ALL_COURSES",
        )
        fields.update(kw)
        c = Coupon(code=code, targets=[CouponTarget(ref_id=str(t)) for t in targets], **fields)
        db.add(c)
        db.commit()
        db.expunge(c)
        return c

    return _make


@pytest.fixture
def read_coupon(Session, db):
    """Fresh read in its own short session (no lock left behind)."""

    def _read(coupon_id):
        db.rollback()
        with Session() as s:
            c = s.get(Coupon, coupon_id)
            s.expunge(c)
            s.rollback()
            return c

    return _read
