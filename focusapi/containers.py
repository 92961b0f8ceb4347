from dependency_injector import containers, providers

from focusapi.config import Settings
from focusapi.providers.collaborators.engagement import EngagementDataClient
from focusapi.providers.collaborators.payment import PaymentGatewayClient
from focusapi.services.aws_service import AwsService
from focusapi.services.enforcement_service import EnforcementService
from focusapi.services.investment_service import InvestmentService
from focusapi.services.ledger_service import LedgerService
from focusapi.services.reward_service import RewardService
from focusapi.services.scheduler_service import SchedulerService
from focusapi.services.unlock_service import UnlockService


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(Settings)


class CollaboratorModule(containers.DeclarativeContainer):
    """External collaborators (engagement data, payment gateway, AWS)."""

    config = providers.DependenciesContainer()

    aws_service = providers.Singleton(AwsService, settings=config.config)
    engagement_client = providers.Singleton(EngagementDataClient, settings=config.config)
    payment_client = providers.Singleton(PaymentGatewayClient, settings=config.config)


class ServiceModule(containers.DeclarativeContainer):
    """Service layer dependencies.

    DB 세션은 요청마다 deps.py에서 db= 인자로 전달합니다.
    """

    config = providers.DependenciesContainer()
    collaborators = providers.DependenciesContainer()

    enforcement_service = providers.Factory(
        EnforcementService,
        settings=config.config,
        aws_service=collaborators.aws_service,
    )
    ledger_service = providers.Factory(LedgerService, settings=config.config)
    reward_service = providers.Factory(
        RewardService,
        settings=config.config,
        engagement_client=collaborators.engagement_client,
    )
    unlock_service = providers.Factory(
        UnlockService,
        settings=config.config,
        enforcement_service=enforcement_service,
    )
    investment_service = providers.Factory(
        InvestmentService,
        settings=config.config,
        payment_client=collaborators.payment_client,
    )
    scheduler_service = providers.Factory(
        SchedulerService,
        reward_service=reward_service,
        unlock_service=unlock_service,
    )


class Container(containers.DeclarativeContainer):
    """Application container."""

    config = providers.Container(ConfigModule)
    collaborators = providers.Container(CollaboratorModule, config=config)
    services = providers.Container(
        ServiceModule,
        config=config,
        collaborators=collaborators,
    )
