"""
classwork/database/init_db.py
Create tables on startup (use migrations in production)
"""

import logging

from sqlalchemy.engine import Engine

from classwork.database.base import Base

# Register every mapped class on Base.metadata
from classwork.models.user import User  # noqa: F401
from classwork.models.task import Task, TaskReferenceFile  # noqa: F401
from classwork.models.submission import Submission, SubmissionFile  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")
