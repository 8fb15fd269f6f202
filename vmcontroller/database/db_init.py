import logging

from .database import engine, Base
from . import models  # noqa: F401  (모델을 Base.metadata에 등록)

logger = logging.getLogger(__name__)


def initialize_db(bind=None):
    """
    DB와 테이블을 생성합니다. (이미 존재하는 테이블은 건드리지 않음)
    """
    bind = bind or engine
    logger.info("Initializing database tables...")
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables ready.")


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    initialize_db()
