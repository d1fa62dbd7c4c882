"""
KYC Service Module

Persistence and orchestration for KYC cases: the repository enforces one case
per user and version-checked saves, the service applies role checks, runs the
case workflow, and records every mutation in the audit trail and event sink.
"""

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
import logging
import threading

from .audit import AuditTrail, AuditEventType
from .errors import CaseAlreadyExists, ConcurrencyConflict, GoldPlatformError, NotFound, Unauthorized
from .events import DomainEvent, EventDispatcher, EventPayload
from .kyc import (
    DocumentType, IdentityDocument, KYCCase, KYCDocument, KYCStatus,
    PersonalInfo, RiskLevel, KYC_VALIDITY_DAYS, RENEWAL_WINDOW_DAYS, MAX_DOCUMENT_BYTES
)
from .logging_config import log_action
from .rbac import CallerIdentity, Permission, require_permission
from .storage import StorageInterface

logger = logging.getLogger("gold_platform.kyc")

MAX_BULK_APPROVALS = 50


class KYCRepository:
    """
    Stores KYC cases keyed by user id, which makes the case unique per user.
    """

    def __init__(self, storage: StorageInterface, table_name: str = "kyc_cases"):
        self.storage = storage
        self.table_name = table_name
        self._insert_lock = threading.Lock()

    def find_by_user(self, user_id: str) -> Optional[KYCCase]:
        data = self.storage.load(self.table_name, user_id)
        if data:
            return KYCCase.from_dict(data)
        return None

    def insert(self, case: KYCCase) -> None:
        """
        Store a new case

        Raises:
            CaseAlreadyExists: If the user already has a case
        """
        with self._insert_lock:
            with self.storage.atomic():
                if self.storage.load(self.table_name, case.user_id) is not None:
                    raise CaseAlreadyExists(f"User {case.user_id} already has a KYC case")
                self.storage.save(self.table_name, case.user_id, case.to_dict())

    def save(self, case: KYCCase) -> None:
        """
        Persist changes to an existing case and bump its version

        Raises:
            ConcurrencyConflict: If another writer saved the case since it was loaded
            NotFound: If the case no longer exists
        """
        expected = case.version
        data = case.to_dict()
        data["version"] = expected + 1
        self.storage.compare_and_swap(self.table_name, case.user_id, data, expected)
        case.version = expected + 1

    def all(self) -> List[KYCCase]:
        return [KYCCase.from_dict(d) for d in self.storage.load_all(self.table_name)]

    def find_by_status(self, status: KYCStatus) -> List[KYCCase]:
        return [KYCCase.from_dict(d) for d in self.storage.find(self.table_name, {"status": status.value})]

    def find_pending_reviews(self) -> List[KYCCase]:
        """Cases submitted and awaiting a reviewer decision, oldest first"""
        cases = self.find_by_status(KYCStatus.SUBMITTED)
        cases.sort(key=lambda c: c.submitted_at or c.created_at)
        return cases

    def find_expiring(self, days_window: int = RENEWAL_WINDOW_DAYS,
                      now: Optional[datetime] = None) -> List[KYCCase]:
        """
        Verified cases expiring after now and no later than now + days_window

        The cutoff is inclusive, matching KYCCase.needs_renewal.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now + timedelta(days=days_window)
        return [
            case for case in self.find_by_status(KYCStatus.VERIFIED)
            if case.expires_at and now < case.expires_at <= cutoff
        ]


class KYCService:
    """
    Entry point for KYC operations invoked by user and admin actions
    """

    def __init__(
        self,
        repository: KYCRepository,
        audit_trail: Optional[AuditTrail] = None,
        events: Optional[EventDispatcher] = None,
        expiry_days: int = KYC_VALIDITY_DAYS,
        renewal_window_days: int = RENEWAL_WINDOW_DAYS,
        max_document_bytes: int = MAX_DOCUMENT_BYTES,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.repository = repository
        self.audit_trail = audit_trail
        self.events = events
        self.expiry_days = expiry_days
        self.renewal_window_days = renewal_window_days
        self.max_document_bytes = max_document_bytes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # Internal helpers

    def _record(self, case: KYCCase, audit_type: AuditEventType, event_type: DomainEvent,
                actor: Optional[str], metadata: Optional[Dict[str, Any]] = None) -> None:
        data = {"user_id": case.user_id, "status": case.status.value, "version": case.version}
        data.update(metadata or {})

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=audit_type,
                entity_type="kyc_case",
                entity_id=case.id,
                metadata=data,
                user_id=actor
            )
        if self.events:
            self.events.publish(EventPayload(
                event_type=event_type,
                entity_type="kyc_case",
                entity_id=case.id,
                data=data
            ))
        log_action(logger, "info", f"KYC {event_type.value}", user_id=actor,
                   action=event_type.value, resource=f"kyc_case:{case.id}")

    def _authorize(self, caller: CallerIdentity, permission: Permission, user_id: str) -> None:
        try:
            require_permission(caller, permission)
        except Unauthorized:
            log_action(logger, "warning", "KYC access denied", user_id=caller.user_id,
                       action=permission.value, resource=f"user:{user_id}")
            if self.audit_trail:
                self.audit_trail.log_event(
                    event_type=AuditEventType.ACCESS_DENIED,
                    entity_type="user",
                    entity_id=user_id,
                    metadata={"permission": permission.value, "role": caller.role.value},
                    user_id=caller.user_id
                )
            raise

    def _authorize_owner(self, caller: CallerIdentity, user_id: str, permission: Permission) -> None:
        """Let the case owner through; anyone else needs the staff permission"""
        if caller.user_id == user_id:
            return
        self._authorize(caller, permission, user_id)

    def _load(self, user_id: str, expected_version: Optional[int] = None) -> KYCCase:
        case = self.get_case(user_id)
        if expected_version is not None and case.version != expected_version:
            raise ConcurrencyConflict(
                f"KYC case for user {user_id} was already updated by someone else",
                expected_version=expected_version,
                actual_version=case.version
            )
        return case

    # Case lifecycle

    def create_case(self, caller: CallerIdentity, user_id: str, personal_info: PersonalInfo,
                    identity_document: IdentityDocument) -> KYCCase:
        """
        Open the KYC case for a user

        Raises:
            Unauthorized: If the caller is neither the user nor a reviewer
            CaseAlreadyExists: If the user already has a case
        """
        self._authorize_owner(caller, user_id, Permission.KYC_REVIEW)
        case = KYCCase.open(
            user_id=user_id,
            personal_info=personal_info,
            identity_document=identity_document,
            opened_by=caller.user_id,
            now=self._clock()
        )
        self.repository.insert(case)
        self._record(case, AuditEventType.KYC_CASE_CREATED, DomainEvent.KYC_CASE_CREATED,
                     caller.user_id)
        return case

    def get_case(self, user_id: str) -> KYCCase:
        """
        Unscoped lookup for callers that already checked access

        Raises:
            NotFound: If the user has no KYC case
        """
        case = self.repository.find_by_user(user_id)
        if case is None:
            raise NotFound(f"No KYC case for user {user_id}")
        return case

    def view_case(self, caller: CallerIdentity, user_id: str) -> KYCCase:
        """
        Raises:
            Unauthorized: If the caller is neither the user nor allowed to view cases
            NotFound: If the user has no KYC case
        """
        self._authorize_owner(caller, user_id, Permission.KYC_VIEW)
        return self.get_case(user_id)

    def submit(self, caller: CallerIdentity, user_id: str) -> KYCCase:
        self._authorize_owner(caller, user_id, Permission.KYC_REVIEW)
        case = self._load(user_id)
        case.submit(submitted_by=caller.user_id, now=self._clock())
        self.repository.save(case)
        self._record(case, AuditEventType.KYC_SUBMITTED, DomainEvent.KYC_SUBMITTED, caller.user_id,
                     {"documents": [d.document_type.value for d in case.documents]})
        return case

    def add_document(self, caller: CallerIdentity, user_id: str, document: KYCDocument) -> KYCDocument:
        self._authorize_owner(caller, user_id, Permission.KYC_REVIEW)
        case = self._load(user_id)
        stored = case.add_document(document, now=self._clock(), max_bytes=self.max_document_bytes)
        self.repository.save(case)
        self._record(case, AuditEventType.KYC_DOCUMENT_ADDED, DomainEvent.KYC_DOCUMENT_ADDED,
                     caller.user_id,
                     {"document_type": stored.document_type.value, "file_name": stored.file_name})
        return stored

    def remove_document(self, caller: CallerIdentity, user_id: str, document_type: DocumentType) -> bool:
        self._authorize_owner(caller, user_id, Permission.KYC_REVIEW)
        case = self._load(user_id)
        removed = case.remove_document(document_type, now=self._clock())
        if removed:
            self.repository.save(case)
            self._record(case, AuditEventType.KYC_DOCUMENT_REMOVED, DomainEvent.KYC_DOCUMENT_REMOVED,
                         caller.user_id, {"document_type": document_type.value})
        return removed

    # Reviewer actions

    def approve(self, caller: CallerIdentity, user_id: str, notes: Optional[str] = None,
                expected_version: Optional[int] = None) -> KYCCase:
        """
        Approve a user's KYC case

        Raises:
            Unauthorized: If the caller may not approve
            NotFound: If the user has no case
            ConcurrencyConflict: If the case changed since expected_version
            InvalidTransition: If the case is already verified
        """
        self._authorize(caller, Permission.KYC_APPROVE, user_id)
        case = self._load(user_id, expected_version)
        case.approve(caller.user_id, notes, now=self._clock(), validity_days=self.expiry_days)
        self.repository.save(case)
        self._record(case, AuditEventType.KYC_APPROVED, DomainEvent.KYC_APPROVED, caller.user_id,
                     {"notes": notes, "expires_at": case.expires_at, "role": caller.role.value})
        return case

    def reject(self, caller: CallerIdentity, user_id: str, reason: str,
               expected_version: Optional[int] = None) -> KYCCase:
        """
        Reject a user's KYC case

        Raises:
            ValueError: If no reason is given
            Unauthorized: If the caller may not reject
            NotFound: If the user has no case
            ConcurrencyConflict: If the case changed since expected_version
            InvalidTransition: If the case is already rejected
        """
        self._authorize(caller, Permission.KYC_REJECT, user_id)
        if not reason or not reason.strip():
            raise ValueError("Rejection reason is required")
        case = self._load(user_id, expected_version)
        case.reject(caller.user_id, reason, now=self._clock())
        self.repository.save(case)
        self._record(case, AuditEventType.KYC_REJECTED, DomainEvent.KYC_REJECTED, caller.user_id,
                     {"reason": reason, "role": caller.role.value})
        return case

    def bulk_approve(self, caller: CallerIdentity, user_ids: List[str],
                     notes: Optional[str] = None) -> Dict[str, Any]:
        """
        Approve several cases; failures are collected rather than raised

        Raises:
            Unauthorized: If the caller may not approve
            ValueError: If the batch is empty or larger than MAX_BULK_APPROVALS
        """
        self._authorize(caller, Permission.KYC_APPROVE, ",".join(user_ids))
        if not user_ids:
            raise ValueError("No users provided")
        if len(user_ids) > MAX_BULK_APPROVALS:
            raise ValueError(f"Maximum {MAX_BULK_APPROVALS} applications can be processed at once")

        approved = 0
        errors = []
        for user_id in user_ids:
            try:
                self.approve(caller, user_id, notes)
                approved += 1
            except (GoldPlatformError, ValueError) as e:
                logger.warning(f"Bulk approval failed for {user_id}: {e}")
                errors.append(f"{user_id}: {e}")

        return {"approved": approved, "failed": len(errors), "errors": errors}

    def verify_document(self, caller: CallerIdentity, user_id: str, document_type: DocumentType,
                        approved: bool, reason: Optional[str] = None) -> KYCDocument:
        self._authorize(caller, Permission.KYC_REVIEW, user_id)
        case = self._load(user_id)
        doc = case.verify_document(document_type, caller.user_id, approved, reason, now=self._clock())
        self.repository.save(case)
        self._record(case, AuditEventType.KYC_DOCUMENT_REVIEWED, DomainEvent.KYC_DOCUMENT_REVIEWED,
                     caller.user_id, {"document_type": document_type.value,
                                      "document_status": doc.status.value, "reason": reason})
        return doc

    def flag_for_review(self, caller: CallerIdentity, user_id: str, reason: str) -> KYCCase:
        self._authorize(caller, Permission.KYC_REVIEW, user_id)
        case = self._load(user_id)
        case.flag_for_review(reason, now=self._clock())
        self.repository.save(case)
        self._record(case, AuditEventType.KYC_FLAGGED, DomainEvent.KYC_FLAGGED, caller.user_id,
                     {"reason": reason})
        return case

    def assess_risk(self, caller: CallerIdentity, user_id: str, level: RiskLevel,
                    notes: Optional[str] = None) -> KYCCase:
        self._authorize(caller, Permission.KYC_REVIEW, user_id)
        case = self._load(user_id)
        case.assess_risk(level, notes, now=self._clock())
        self.repository.save(case)
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.KYC_RISK_ASSESSED,
                entity_type="kyc_case",
                entity_id=case.id,
                metadata={"risk_level": level.value, "notes": notes},
                user_id=caller.user_id
            )
        return case

    # Queues and reporting

    def pending_reviews(self, caller: CallerIdentity) -> List[KYCCase]:
        self._authorize(caller, Permission.KYC_VIEW, "*")
        return self.repository.find_pending_reviews()

    def expiring(self, caller: CallerIdentity, days_window: Optional[int] = None) -> List[KYCCase]:
        self._authorize(caller, Permission.KYC_VIEW, "*")
        window = self.renewal_window_days if days_window is None else days_window
        return self.repository.find_expiring(window, now=self._clock())

    def statistics(self, caller: CallerIdentity) -> Dict[str, Any]:
        """
        Dashboard counters

        Returns:
            total, pending (pending + submitted), verified, rejected,
            processed_today and average_processing_hours over verified cases
        """
        self._authorize(caller, Permission.KYC_VIEW, "*")
        now = self._clock()
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        cases = self.repository.all()

        counts = {status: 0 for status in KYCStatus}
        processed_today = 0
        durations = []
        for case in cases:
            counts[case.status] += 1
            decided_at = case.verified_at if case.status == KYCStatus.VERIFIED else case.rejected_at
            if decided_at and decided_at >= today_start:
                processed_today += 1
            if case.status == KYCStatus.VERIFIED and case.submitted_at and case.verified_at:
                durations.append((case.verified_at - case.submitted_at).total_seconds())

        average_hours = Decimal('0')
        if durations:
            average_hours = (Decimal(str(sum(durations) / len(durations))) / Decimal('3600')).quantize(Decimal('0.1'))

        return {
            "total": len(cases),
            "pending": counts[KYCStatus.PENDING] + counts[KYCStatus.SUBMITTED],
            "verified": counts[KYCStatus.VERIFIED],
            "rejected": counts[KYCStatus.REJECTED],
            "processed_today": processed_today,
            "average_processing_hours": average_hours,
        }
