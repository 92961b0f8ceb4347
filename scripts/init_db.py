import logging
import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from focusapi.database.connection import engine
from focusapi.database.session import get_db_context
from focusapi.logging_config import setup_logging
from focusapi.models.base import Base
from focusapi.models.investment import MoneyMarketFund

# create_all이 모든 테이블을 인식하도록 모델 모듈을 로드
import focusapi.models.balance  # noqa: F401
import focusapi.models.processed_window  # noqa: F401
import focusapi.models.transaction  # noqa: F401

logger = logging.getLogger("focusapi")

DEFAULT_FUNDS = [
    {
        "id": "mmf-stable",
        "name": "Stable Money Market Fund",
        "description": "단기 국공채 중심의 저위험 MMF",
        "unit_price": 50.0,
        "rate_percent": 3.2,
        "min_investment": 50,
    },
    {
        "id": "mmf-growth",
        "name": "Growth Money Market Fund",
        "description": "우량 회사채 비중을 높인 MMF",
        "unit_price": 100.0,
        "rate_percent": 4.1,
        "min_investment": 100,
    },
]


def init_db(seed_funds: bool = True):
    """테이블 생성 및 기본 MMF 카탈로그 등록"""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created")

        if seed_funds:
            with get_db_context() as db:
                for fund in DEFAULT_FUNDS:
                    if db.get(MoneyMarketFund, fund["id"]) is None:
                        db.add(MoneyMarketFund(**fund))
                        logger.info(f"Seeded fund {fund['id']}")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise


if __name__ == "__main__":
    setup_logging()
    init_db()
