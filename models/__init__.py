from datetime import UTC, datetime
from typing import TYPE_CHECKING

import datetype

from main import db

# If we're type checking, we want models to inherit from the BaseModel (trivial subclass
# of DeclarativeBase) as mypy can't handle using the sqlalchemy-flask generated db.Model
if TYPE_CHECKING:
    from main import BaseModel
else:
    BaseModel = db.Model


def naive_utcnow() -> datetype.DateTime[None]:
    return datetype.naive(datetime.now(UTC).replace(tzinfo=None))


from .permission import *  # noqa: F403
from .user import *  # noqa: F403
from .volunteer import *  # noqa: F403

db.configure_mappers()
