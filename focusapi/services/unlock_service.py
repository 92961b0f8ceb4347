from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.orm import Session
import logging

from focusapi.config import Settings
from focusapi.core.exceptions import UserNotFoundError, ValidationError
from focusapi.models.balance import UserBalance
from focusapi.models.transaction import TransactionType
from focusapi.repositories.ledger_repository import LedgerRepository, LedgerUnit
from focusapi.schemas.unlock import (
    ActiveSessionsResponse,
    LockedAppsResponse,
    ReconcileResponse,
    SpendUnlockResponse,
    UnlockSession,
)
from focusapi.services.enforcement_service import EnforcementService
from focusapi.utils.timezone_utils import MS_PER_MINUTE, resolve_now

logger = logging.getLogger(__name__)


def _dedupe(packages: List[str]) -> List[str]:
    return list(dict.fromkeys(packages))


class UnlockService:
    """앱 잠금/임시 해제 세션 관리

    잠금 목록과 세션은 잔액 레코드에 함께 저장되어 원장과 같은 원자적 갱신으로
    변경됩니다. 커밋 이후에만 차단 서비스로 잠금 목록을 전달합니다.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        enforcement_service: EnforcementService,
    ):
        self.db = db
        self.settings = settings
        self.enforcement_service = enforcement_service
        self.ledger_repo = LedgerRepository(
            db,
            max_retries=settings.LEDGER_MAX_RETRIES,
            backoff_ms=settings.LEDGER_RETRY_BACKOFF_MS,
        )
        self.unlock_cost = settings.UNLOCK_COST_TOKENS
        self.unlock_duration_ms = settings.UNLOCK_DURATION_MINUTES * MS_PER_MINUTE

    def _sync(self, record: UserBalance) -> bool:
        """커밋된 잠금 목록을 차단 서비스로 전달하고 성공한 version을 기록

        실패한 전달은 다음 reconcile에서 다시 시도됩니다.
        """
        synced = self.enforcement_service.sync_locked_set(
            record.user_id, record.locked_apps, record.version
        )
        if not synced:
            logger.warning(
                f"Enforcement sync pending for user {record.user_id} at version {record.version}"
            )
            return False

        try:
            self.ledger_repo.mark_synced(record.user_id, record.version)
        except Exception as e:
            # 전달은 성공했으므로 결과는 유지. 다음 reconcile에서 같은 version이 다시 전달됨
            logger.error(
                f"Failed to record synced version {record.version} for user {record.user_id}: {str(e)}"
            )
        return True

    # ------------------------------------------------------------------
    # 임시 해제
    # ------------------------------------------------------------------

    def spend_unlock(
        self,
        user_id: str,
        package_name: str,
        app_name: str = "",
        request_id: Optional[str] = None,
        now: Optional[int] = None,
    ) -> SpendUnlockResponse:
        """토큰을 사용해 앱을 일정 시간 해제

        잔액 부족 시 차감/세션/거래 기록 없이 실패 결과를 반환합니다.

        Raises:
            UserNotFoundError: 잔액 레코드 없음
            TransientConflictError: 동시 수정 재시도 한도 초과
        """
        if not package_name:
            raise ValidationError("package_name is required")

        def mutate(unit: LedgerUnit) -> Dict[str, Any]:
            existing = unit.find_request()
            if existing is not None:
                session = next(
                    (
                        s
                        for s in unit.record.unlock_sessions
                        if s["package_name"] == package_name
                        and s["unlocked_at"] == existing.timestamp
                    ),
                    None,
                )
                return {"status": "replay", "balance": existing.balance, "session": session}

            if unit.balance < self.unlock_cost:
                return {"status": "insufficient", "balance": unit.balance}

            unit.debit(
                self.unlock_cost,
                TransactionType.UNLOCK,
                {"app_package": package_name, "app_name": app_name},
            )

            record = unit.record
            session = {
                "package_name": package_name,
                "unlocked_at": unit.now,
                "expires_at": unit.now + self.unlock_duration_ms,
            }
            record.locked_apps = [p for p in record.locked_apps if p != package_name]
            record.unlock_sessions = [
                s
                for s in record.unlock_sessions
                if not (s["package_name"] == package_name and s["expires_at"] <= unit.now)
            ] + [session]
            return {"status": "ok", "balance": unit.balance, "session": session, "record": record}

        outcome = self.ledger_repo.run_atomic(
            user_id, mutate, request_id=request_id, now=now
        )

        if outcome["status"] == "insufficient":
            logger.info(
                f"Unlock rejected for user {user_id} ({package_name}): "
                f"balance={outcome['balance']}, cost={self.unlock_cost}"
            )
            return SpendUnlockResponse(
                success=False,
                new_balance=outcome["balance"],
                message=(
                    f"Insufficient tokens. You need {self.unlock_cost} tokens "
                    f"but have {outcome['balance']}."
                ),
                error_code="BALANCE_001",
            )

        session = outcome["session"]
        if outcome["status"] == "replay":
            logger.info(f"Replayed unlock request {request_id} for user {user_id}")
            return SpendUnlockResponse(
                success=True,
                new_balance=outcome["balance"],
                message="Request already processed",
                session=UnlockSession(**session) if session else None,
            )

        logger.info(
            f"Unlocked {package_name} for user {user_id} until {session['expires_at']}, "
            f"balance={outcome['balance']}"
        )
        synced = self._sync(outcome["record"])
        return SpendUnlockResponse(
            success=True,
            new_balance=outcome["balance"],
            message=f"{app_name or package_name} unlocked for {self.settings.UNLOCK_DURATION_MINUTES} minutes",
            session=UnlockSession(**session),
            enforcement_synced=synced,
        )

    def handle_unlock_request(
        self,
        user_id: str,
        package_name: str,
        app_name: str = "",
        request_id: Optional[str] = None,
    ) -> SpendUnlockResponse:
        """차단 화면에서 들어온 해제 요청 - spend_unlock과 동일하게 처리"""
        logger.info(f"Unlock request from enforcement for user {user_id}: {package_name}")
        return self.spend_unlock(
            user_id, package_name, app_name=app_name, request_id=request_id
        )

    # ------------------------------------------------------------------
    # 만료 세션 재잠금
    # ------------------------------------------------------------------

    def reconcile(self, user_id: str, now: Optional[int] = None) -> ReconcileResponse:
        """만료된 세션의 앱을 다시 잠금. 만료 세션이 없으면 아무것도 기록하지 않음

        이전에 전달하지 못한 잠금 목록(version > synced_version)이 있으면
        만료 세션이 없어도 다시 전달합니다.
        """
        current = resolve_now(now)

        def mutate(unit: LedgerUnit) -> Dict[str, Any]:
            record = unit.record
            expired = [s for s in record.unlock_sessions if s["expires_at"] <= current]
            active = [s for s in record.unlock_sessions if s["expires_at"] > current]
            if not expired:
                return {"relocked": [], "record": record, "changed": False}

            # 같은 앱에 아직 유효한 세션이 남아 있으면 잠그지 않음
            still_open = {s["package_name"] for s in active}
            relocked = _dedupe(
                [s["package_name"] for s in expired if s["package_name"] not in still_open]
            )
            record.locked_apps = _dedupe(list(record.locked_apps) + relocked)
            record.unlock_sessions = active
            unit.touch()
            return {"relocked": relocked, "record": record, "changed": True}

        outcome = self.ledger_repo.run_atomic(user_id, mutate, now=now)
        record = outcome["record"]
        active_sessions = [UnlockSession(**s) for s in record.unlock_sessions]

        if outcome["changed"]:
            logger.info(
                f"Relocked {len(outcome['relocked'])} apps for user {user_id}: {outcome['relocked']}"
            )

        synced = False
        if outcome["changed"] or record.version > record.synced_version:
            if not outcome["changed"]:
                logger.info(
                    f"Retrying enforcement sync for user {user_id}: "
                    f"version={record.version}, synced_version={record.synced_version}"
                )
            synced = self._sync(record)

        return ReconcileResponse(
            relocked_packages=outcome["relocked"],
            locked_apps=list(record.locked_apps),
            active_sessions=active_sessions,
            enforcement_synced=synced,
        )

    # ------------------------------------------------------------------
    # 잠금 목록 편집 (토큰 비용 없음)
    # ------------------------------------------------------------------

    def _edit_locked_apps(
        self,
        user_id: str,
        edit: Callable[[List[str]], List[str]],
        action: str,
    ) -> LockedAppsResponse:
        def mutate(unit: LedgerUnit) -> UserBalance:
            record = unit.record
            updated = _dedupe(edit(list(record.locked_apps)))
            if updated != list(record.locked_apps):
                record.locked_apps = updated
                unit.touch()
            return record

        record = self.ledger_repo.run_atomic(user_id, mutate)
        logger.info(f"{action} for user {user_id}: {len(record.locked_apps)} apps locked")
        synced = self._sync(record)
        return LockedAppsResponse(
            locked_apps=list(record.locked_apps), enforcement_synced=synced
        )

    def lock_app(self, user_id: str, package_name: str) -> LockedAppsResponse:
        return self.lock_apps(user_id, [package_name])

    def lock_apps(self, user_id: str, package_names: List[str]) -> LockedAppsResponse:
        return self._edit_locked_apps(
            user_id, lambda locked: locked + list(package_names), "Locked apps"
        )

    def unlock_app_permanently(self, user_id: str, package_name: str) -> LockedAppsResponse:
        return self.unlock_apps_permanently(user_id, [package_name])

    def unlock_apps_permanently(
        self, user_id: str, package_names: List[str]
    ) -> LockedAppsResponse:
        """차단 대상에서 제외 (세션은 그대로 두며, 만료 시 재잠금될 수 있음)"""
        targets = set(package_names)
        return self._edit_locked_apps(
            user_id,
            lambda locked: [p for p in locked if p not in targets],
            "Permanently unlocked apps",
        )

    def set_locked_apps(self, user_id: str, package_names: List[str]) -> LockedAppsResponse:
        return self._edit_locked_apps(
            user_id, lambda _locked: list(package_names), "Replaced locked apps"
        )

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def _get_record(self, user_id: str) -> UserBalance:
        record = self.ledger_repo.get_record(user_id)
        if record is None:
            raise UserNotFoundError(user_id)
        return record

    def get_locked_apps(self, user_id: str) -> LockedAppsResponse:
        record = self._get_record(user_id)
        return LockedAppsResponse(locked_apps=list(record.locked_apps))

    def get_active_sessions(
        self, user_id: str, now: Optional[int] = None
    ) -> ActiveSessionsResponse:
        current = resolve_now(now)
        record = self._get_record(user_id)
        sessions = [
            UnlockSession(**s) for s in record.unlock_sessions if s["expires_at"] > current
        ]
        return ActiveSessionsResponse(sessions=sessions, now=current)

    def is_app_unlocked(
        self, user_id: str, package_name: str, now: Optional[int] = None
    ) -> bool:
        sessions = self.get_active_sessions(user_id, now=now).sessions
        return any(s.package_name == package_name for s in sessions)

    def get_unlock_time_remaining(
        self, user_id: str, package_name: str, now: Optional[int] = None
    ) -> int:
        """남은 해제 시간 (ms), 해제 상태가 아니면 0"""
        active = self.get_active_sessions(user_id, now=now)
        expires = [s.expires_at for s in active.sessions if s.package_name == package_name]
        if not expires:
            return 0
        return max(0, max(expires) - active.now)
