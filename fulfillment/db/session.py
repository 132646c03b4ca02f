from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine
from fulfillment.core.config import settings

class Base(DeclarativeBase): pass

def _engine_kwargs(dsn: str) -> dict:
    # local/dev sqlite: sessions are handed across the threadpool
    if dsn.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": settings.DB_POOL_SIZE, "max_overflow": settings.DB_MAX_OVERFLOW}

engine = create_engine(settings.POSTGRES_DSN, **_engine_kwargs(settings.POSTGRES_DSN))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
