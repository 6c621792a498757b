from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy import create_engine
from .config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Sessions are handed between the event loop and the threadpool during fan-out
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_size": 5, "max_overflow": 10, "pool_recycle": 3600}


engine = create_engine(settings.database_url, future=True, pool_pre_ping=True, **_engine_kwargs(settings.database_url))

# IMPORTANT: do not use scoped_session with async frameworks; create a fresh Session per request
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
