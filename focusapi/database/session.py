from contextlib import contextmanager
from focusapi.database.connection import SessionLocal


def get_db():
    """요청 단위 세션 (커밋은 리포지토리가 담당)"""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        if db.in_transaction():
            db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context():
    """스크립트/배치용 세션 컨텍스트"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
