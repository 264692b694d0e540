import os

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from coursemarket.core.config import settings

# Base para modelos (lo importa coursemarket.main)
Base = declarative_base()

# Ruta absoluta al coursemarket.db (raíz del proyecto)
BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
DB_FILE = os.path.join(BASE_DIR, "coursemarket.db")
ABS_URL = "sqlite:///" + DB_FILE.replace("\\", "/")

# Permite override por variable de entorno (DB_URL)
SQLALCHEMY_DATABASE_URL = settings.database_url or ABS_URL


def make_engine(url: str):
    """
    Engine with the connection policy every redemption relies on.

    SQLite: WAL, long busy timeout and BEGIN IMMEDIATE on every transaction,
    so the re-validation reads and the ledger/counter writes of a redemption
    run under the database write lock. Other backends keep their own
    transaction semantics (the conditional UPDATE and the unique constraint
    carry the guarantee there).
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    eng = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": 60},
        pool_pre_ping=True,
    )

    # PRAGMAs por conexión
    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_conn, _):
        # pysqlite must not open transactions on its own; "begin" below does it
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        try:
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA busy_timeout=60000;")
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.execute("PRAGMA synchronous=NORMAL;")
        finally:
            cur.close()

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return eng


engine = make_engine(SQLALCHEMY_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependencia FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
