# essay_defense/db/init_db.py
from essay_defense import models  # noqa
from essay_defense.db.base import Base
from essay_defense.db.session import engine


def init_db():
    Base.metadata.create_all(bind=engine)
