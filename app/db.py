from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.config import settings


_database_url = settings.database_url_normalized

engine = create_engine(
    _database_url,
    pool_pre_ping=True,
    connect_args={'check_same_thread': False} if _database_url.startswith('sqlite') else {},
)

# One session per request; never share across requests.
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
