from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base
import os

DB_USER = os.getenv("POSTGRES_USER", "cabin")
DB_PASS = os.getenv("POSTGRES_PASSWORD", "cabin")
DB_NAME = os.getenv("POSTGRES_DB", "cabin")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost")
DB_PORT = os.getenv("POSTGRES_PORT", "5432")

# DATABASE_URL wins over the POSTGRES_* parts (tests point it at sqlite)
DATABASE_URL = os.getenv("DATABASE_URL") or (
    f"postgresql+psycopg2://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

_connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # request handlers run in a threadpool
    _connect_args["check_same_thread"] = False

engine = create_engine(
    DATABASE_URL,
    future=True,
    pool_pre_ping=True,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)

Base = declarative_base()


def get_db():
    """One session per request, closed when the request is done."""
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
