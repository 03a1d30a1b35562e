# marketplace/db.py
"""Database engine and session utilities.

Centralized SQLAlchemy engine creation and session dependency helper for FastAPI.
Queue workers and scheduled jobs open their own sessions from ``SessionLocal``.
"""
import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL not set")

# Normalize SQLAlchemy URL scheme (SQLAlchemy 2.x doesn't accept 'postgres://')
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg2://", 1)

if DATABASE_URL.startswith("sqlite"):
    # scheduler threads share the engine with request handlers
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    # tuned pool settings for cloud DB
    engine = create_engine(
        DATABASE_URL,
        pool_size=int(os.getenv("DB_POOL_SIZE", 5)),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", 10)),
        pool_pre_ping=True
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
