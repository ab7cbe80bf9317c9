from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from forms_approval.config import settings

engine_kwargs = {"echo": settings.debug, "pool_pre_ping": True}
if settings.database_url.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(settings.database_url, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Tables owned by the form host. Read only, never created or dropped here.
FormHostBase = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
