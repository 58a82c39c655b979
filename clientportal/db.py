from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from clientportal.config import settings

engine = create_engine(
    settings.database_url_fixed,
    pool_pre_ping=True,
    future=True,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session. Uncommitted work is rolled back on error."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
