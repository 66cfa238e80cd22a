from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
import os

from .core.config import settings

SQLALCHEMY_DATABASE_URL = settings.database_url

# Ensure data directory exists for file-backed sqlite
if SQLALCHEMY_DATABASE_URL.startswith("sqlite:///"):
    db_path = SQLALCHEMY_DATABASE_URL[len("sqlite:///"):]
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
