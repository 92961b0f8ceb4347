from fastapi import Depends, Request
from sqlalchemy.orm import Session

from focusapi.containers import Container
from focusapi.database.session import get_db

# Services
from focusapi.services.investment_service import InvestmentService
from focusapi.services.ledger_service import LedgerService
from focusapi.services.reward_service import RewardService
from focusapi.services.scheduler_service import SchedulerService
from focusapi.services.unlock_service import UnlockService


def get_container(request: Request) -> Container:
    return request.app.container


def get_ledger_service(
    db: Session = Depends(get_db), container: Container = Depends(get_container)
) -> LedgerService:
    return container.services.ledger_service(db=db)


def get_reward_service(
    db: Session = Depends(get_db), container: Container = Depends(get_container)
) -> RewardService:
    return container.services.reward_service(db=db)


def get_unlock_service(
    db: Session = Depends(get_db), container: Container = Depends(get_container)
) -> UnlockService:
    return container.services.unlock_service(db=db)


def get_investment_service(
    db: Session = Depends(get_db), container: Container = Depends(get_container)
) -> InvestmentService:
    return container.services.investment_service(db=db)


def get_scheduler_service(
    db: Session = Depends(get_db), container: Container = Depends(get_container)
) -> SchedulerService:
    return container.services.scheduler_service(
        reward_service__db=db, unlock_service__db=db
    )
