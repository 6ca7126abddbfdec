from sqlalchemy.orm import DeclarativeBase

class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


# --- IMPORT ALL MODELS HERE so Alembic and create_all detect them ---
from jobmatch.db import models  # noqa: E402,F401
