# backend/spacezone/db/init_db.py
from sqlalchemy.orm import sessionmaker

from spacezone.db.base import Base

# import the models so the metadata knows every table
from spacezone import models  # noqa: F401


def init_db(session_factory: sessionmaker) -> None:
    Base.metadata.create_all(bind=session_factory.kw["bind"])
