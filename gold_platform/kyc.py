"""
KYC Case Module

Know Your Customer verification case: personal information, identity
document metadata, uploaded documents, review stamps, and an append-only
status history. Status changes go through an explicit transition table.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone, timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
import uuid

from .errors import InvalidDocument, InvalidTransition, NotFound
from .storage import StorageRecord


KYC_VALIDITY_DAYS = 365
RENEWAL_WINDOW_DAYS = 30
MAX_DOCUMENT_BYTES = 10 * 1024 * 1024  # 10MB
ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "application/pdf"})


class KYCStatus(Enum):
    """KYC verification status"""
    NONE = "none"             # No case opened yet
    PENDING = "pending"       # Case opened, collecting documents
    SUBMITTED = "submitted"   # Awaiting reviewer decision
    VERIFIED = "verified"     # Approved; carries an expiry
    REJECTED = "rejected"     # Declined; user may resubmit


class DocumentType(Enum):
    PASSPORT = "passport"
    NATIONAL_ID = "national_id"
    DRIVERS_LICENSE = "drivers_license"
    PROOF_OF_ADDRESS = "proof_of_address"
    SELFIE = "selfie"


class DocumentStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class IdType(Enum):
    """Identity documents accepted as primary ID"""
    PASSPORT = "passport"
    NATIONAL_ID = "national_id"
    DRIVERS_LICENSE = "drivers_license"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Target statuses reachable from each status. Every KYCStatus has an entry.
ALLOWED_TRANSITIONS: Dict[KYCStatus, FrozenSet[KYCStatus]] = {
    KYCStatus.NONE: frozenset({KYCStatus.PENDING, KYCStatus.SUBMITTED}),
    KYCStatus.PENDING: frozenset({KYCStatus.SUBMITTED, KYCStatus.VERIFIED, KYCStatus.REJECTED}),
    KYCStatus.SUBMITTED: frozenset({KYCStatus.SUBMITTED, KYCStatus.VERIFIED, KYCStatus.REJECTED}),
    # Resubmission of a verified case is further limited to the renewal window
    KYCStatus.VERIFIED: frozenset({KYCStatus.SUBMITTED, KYCStatus.REJECTED}),
    KYCStatus.REJECTED: frozenset({KYCStatus.SUBMITTED, KYCStatus.VERIFIED}),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


@dataclass
class PersonalInfo:
    """Applicant details as declared on the KYC form"""
    full_name: str
    date_of_birth: date
    nationality: str
    address_line1: str
    city: str
    country: str
    postal_code: str
    address_line2: Optional[str] = None
    state: Optional[str] = None
    phone_number: Optional[str] = None

    def __post_init__(self):
        if not self.full_name or not self.address_line1 or not self.city:
            raise ValueError("Full name, address line1 and city are required")
        if len(self.nationality) != 2:
            raise ValueError("Nationality must be a 2-letter country code")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "full_name": self.full_name,
            "date_of_birth": self.date_of_birth.isoformat(),
            "nationality": self.nationality,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "postal_code": self.postal_code,
            "phone_number": self.phone_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PersonalInfo':
        return cls(
            full_name=data["full_name"],
            date_of_birth=date.fromisoformat(data["date_of_birth"]),
            nationality=data["nationality"],
            address_line1=data["address_line1"],
            address_line2=data.get("address_line2"),
            city=data["city"],
            state=data.get("state"),
            country=data["country"],
            postal_code=data["postal_code"],
            phone_number=data.get("phone_number"),
        )


@dataclass
class IdentityDocument:
    """Metadata of the primary identity document"""
    id_type: IdType
    id_number: str
    issuing_country: str
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id_type": self.id_type.value,
            "id_number": self.id_number,
            "issuing_country": self.issuing_country,
            "issue_date": self.issue_date.isoformat() if self.issue_date else None,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IdentityDocument':
        return cls(
            id_type=IdType(data["id_type"]),
            id_number=data["id_number"],
            issuing_country=data["issuing_country"],
            issue_date=_parse_date(data.get("issue_date")),
            expiry_date=_parse_date(data.get("expiry_date")),
        )


@dataclass
class KYCDocument:
    """An uploaded verification document; superseded on re-upload, never deleted"""
    document_type: DocumentType
    file_url: str
    file_name: str
    file_size: int
    mime_type: str
    uploaded_at: Optional[datetime] = None
    verified: bool = False
    status: DocumentStatus = DocumentStatus.PENDING
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    def validate(self, max_bytes: int = MAX_DOCUMENT_BYTES) -> None:
        """
        Raises:
            InvalidDocument: On unsupported mime type, empty or oversize file
        """
        if self.mime_type.lower() not in ALLOWED_MIME_TYPES:
            raise InvalidDocument(f"Unsupported file type: {self.mime_type}")
        if self.file_size <= 0:
            raise InvalidDocument("Document file is empty")
        if self.file_size > max_bytes:
            raise InvalidDocument(f"Document exceeds maximum size of {max_bytes} bytes")
        if not self.file_url:
            raise InvalidDocument("Document file URL is required")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_type": self.document_type.value,
            "file_url": self.file_url,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_at": _iso(self.uploaded_at),
            "verified": self.verified,
            "status": self.status.value,
            "verified_at": _iso(self.verified_at),
            "verified_by": self.verified_by,
            "rejection_reason": self.rejection_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KYCDocument':
        return cls(
            document_type=DocumentType(data["document_type"]),
            file_url=data["file_url"],
            file_name=data["file_name"],
            file_size=int(data["file_size"]),
            mime_type=data["mime_type"],
            uploaded_at=_parse_dt(data.get("uploaded_at")),
            verified=bool(data.get("verified", False)),
            status=DocumentStatus(data.get("status", DocumentStatus.PENDING.value)),
            verified_at=_parse_dt(data.get("verified_at")),
            verified_by=data.get("verified_by"),
            rejection_reason=data.get("rejection_reason"),
        )


@dataclass(frozen=True)
class StatusHistoryEntry:
    status: KYCStatus
    timestamp: datetime
    updated_by: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "updated_by": self.updated_by,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusHistoryEntry':
        return cls(
            status=KYCStatus(data["status"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            updated_by=data.get("updated_by"),
            note=data.get("note"),
        )


@dataclass
class KYCCase(StorageRecord):
    """
    One verification case per user.

    Mutating methods only change this in-memory value; persistence and
    permission checks belong to KYCService.
    """
    user_id: str
    personal_info: PersonalInfo
    identity_document: IdentityDocument
    status: KYCStatus = KYCStatus.PENDING
    documents: List[KYCDocument] = field(default_factory=list)
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    risk_notes: Optional[str] = None
    requires_manual_review: bool = False
    flagged_for_review: bool = False
    flag_reason: Optional[str] = None
    status_history: List[StatusHistoryEntry] = field(default_factory=list)
    version: int = 0

    @classmethod
    def open(
        cls,
        user_id: str,
        personal_info: PersonalInfo,
        identity_document: IdentityDocument,
        status: KYCStatus = KYCStatus.PENDING,
        opened_by: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> 'KYCCase':
        """
        Build a fully formed case whose history holds the initial status
        """
        now = now or _utcnow()
        case = cls(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            personal_info=personal_info,
            identity_document=identity_document,
            status=status,
        )
        case.status_history.append(
            StatusHistoryEntry(status=status, timestamp=now, updated_by=opened_by, note="KYC case opened")
        )
        return case

    # Status workflow

    def _transition(self, target: KYCStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Cannot move KYC case from '{self.status.value}' to '{target.value}'"
            )

    def add_status_update(self, status: KYCStatus, note: Optional[str] = None,
                          updated_by: Optional[str] = None,
                          now: Optional[datetime] = None) -> None:
        """Append a history entry; history is never truncated or reordered"""
        now = now or _utcnow()
        if self.status_history and now < self.status_history[-1].timestamp:
            now = self.status_history[-1].timestamp
        self.status_history.append(
            StatusHistoryEntry(status=status, timestamp=now, updated_by=updated_by, note=note)
        )
        self.updated_at = now

    def submit(self, submitted_by: Optional[str] = None, now: Optional[datetime] = None) -> None:
        """
        Send the case for review

        Allowed from none, pending, submitted and rejected. A verified case may
        only be resubmitted once it needs renewal.

        Raises:
            InvalidTransition: If the case is verified and not yet due for renewal
        """
        now = now or _utcnow()
        self._transition(KYCStatus.SUBMITTED)
        if self.status == KYCStatus.VERIFIED and not self.needs_renewal(now):
            raise InvalidTransition("KYC case is already verified and not due for renewal")

        self.status = KYCStatus.SUBMITTED
        self.submitted_at = now
        self.add_status_update(KYCStatus.SUBMITTED, "KYC submitted for review", submitted_by, now)

    def approve(self, reviewer_id: str, notes: Optional[str] = None,
                now: Optional[datetime] = None, validity_days: int = KYC_VALIDITY_DAYS) -> None:
        """
        Mark the case verified and start its validity period

        Raises:
            InvalidTransition: If the case is already verified or was never opened
        """
        now = now or _utcnow()
        if self.status == KYCStatus.VERIFIED:
            raise InvalidTransition("KYC case already verified")
        self._transition(KYCStatus.VERIFIED)

        self.status = KYCStatus.VERIFIED
        self.verified_at = now
        self.reviewed_at = now
        self.reviewed_by = reviewer_id
        self.review_notes = notes
        self.expires_at = now + timedelta(days=validity_days)
        self.add_status_update(KYCStatus.VERIFIED, notes, reviewer_id, now)

    def reject(self, reviewer_id: str, reason: str, now: Optional[datetime] = None) -> None:
        """
        Decline the case with a reason shown to the user

        A previously verified case loses its validity period.

        Raises:
            InvalidTransition: If the case is already rejected or was never opened
        """
        now = now or _utcnow()
        if self.status == KYCStatus.REJECTED:
            raise InvalidTransition("KYC case already rejected")
        self._transition(KYCStatus.REJECTED)

        self.status = KYCStatus.REJECTED
        self.rejected_at = now
        self.reviewed_at = now
        self.reviewed_by = reviewer_id
        self.rejection_reason = reason
        self.verified_at = None
        self.expires_at = None
        self.add_status_update(KYCStatus.REJECTED, reason, reviewer_id, now)

    # Expiry queries

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True iff an expiry is set and lies in the past"""
        now = now or _utcnow()
        return self.expires_at is not None and self.expires_at < now

    def needs_renewal(self, now: Optional[datetime] = None,
                      window_days: int = RENEWAL_WINDOW_DAYS) -> bool:
        """
        True iff an expiry is set and at most `window_days` away.

        The boundary is inclusive: exactly 30 days left needs renewal. An
        already expired case also needs renewal.
        """
        now = now or _utcnow()
        if self.expires_at is None:
            return False
        return self.expires_at - now <= timedelta(days=window_days)

    # Documents

    def get_document(self, document_type: DocumentType) -> Optional[KYCDocument]:
        for doc in self.documents:
            if doc.document_type == document_type:
                return doc
        return None

    def add_document(self, doc: KYCDocument, now: Optional[datetime] = None,
                     max_bytes: int = MAX_DOCUMENT_BYTES) -> KYCDocument:
        """
        Attach a document, replacing any document of the same type.

        The stored entry always starts unreviewed.
        """
        doc.validate(max_bytes)
        now = now or _utcnow()
        stored = KYCDocument(
            document_type=doc.document_type,
            file_url=doc.file_url,
            file_name=doc.file_name,
            file_size=doc.file_size,
            mime_type=doc.mime_type,
            uploaded_at=now,
            verified=False,
            status=DocumentStatus.PENDING,
        )
        self.documents = [d for d in self.documents if d.document_type != doc.document_type]
        self.documents.append(stored)
        self.updated_at = now
        return stored

    def remove_document(self, document_type: DocumentType, now: Optional[datetime] = None) -> bool:
        """Remove the document of that type; returns False when none existed"""
        remaining = [d for d in self.documents if d.document_type != document_type]
        removed = len(remaining) != len(self.documents)
        if removed:
            self.documents = remaining
            self.updated_at = now or _utcnow()
        return removed

    def verify_document(self, document_type: DocumentType, reviewer_id: str, approved: bool,
                        reason: Optional[str] = None, now: Optional[datetime] = None) -> KYCDocument:
        """
        Record a reviewer decision on a single document

        Raises:
            NotFound: If no document of that type is attached
        """
        doc = self.get_document(document_type)
        if doc is None:
            raise NotFound(f"No {document_type.value} document on KYC case {self.id}")

        now = now or _utcnow()
        doc.verified = approved
        doc.status = DocumentStatus.APPROVED if approved else DocumentStatus.REJECTED
        doc.verified_at = now
        doc.verified_by = reviewer_id
        doc.rejection_reason = None if approved else reason
        self.updated_at = now
        return doc

    # Review flags

    def flag_for_review(self, reason: str, now: Optional[datetime] = None) -> None:
        self.flagged_for_review = True
        self.requires_manual_review = True
        self.flag_reason = reason
        self.updated_at = now or _utcnow()

    def assess_risk(self, level: RiskLevel, notes: Optional[str] = None,
                    now: Optional[datetime] = None) -> None:
        self.risk_level = level
        self.risk_notes = notes
        if level == RiskLevel.HIGH:
            self.requires_manual_review = True
        self.updated_at = now or _utcnow()

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "user_id": self.user_id,
            "status": self.status.value,
            "personal_info": self.personal_info.to_dict(),
            "identity_document": self.identity_document.to_dict(),
            "documents": [d.to_dict() for d in self.documents],
            "submitted_at": _iso(self.submitted_at),
            "reviewed_at": _iso(self.reviewed_at),
            "verified_at": _iso(self.verified_at),
            "rejected_at": _iso(self.rejected_at),
            "expires_at": _iso(self.expires_at),
            "reviewed_by": self.reviewed_by,
            "review_notes": self.review_notes,
            "rejection_reason": self.rejection_reason,
            "risk_level": self.risk_level.value if self.risk_level else None,
            "risk_notes": self.risk_notes,
            "requires_manual_review": self.requires_manual_review,
            "flagged_for_review": self.flagged_for_review,
            "flag_reason": self.flag_reason,
            "status_history": [h.to_dict() for h in self.status_history],
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KYCCase':
        return cls(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            user_id=data["user_id"],
            status=KYCStatus(data["status"]),
            personal_info=PersonalInfo.from_dict(data["personal_info"]),
            identity_document=IdentityDocument.from_dict(data["identity_document"]),
            documents=[KYCDocument.from_dict(d) for d in data.get("documents", [])],
            submitted_at=_parse_dt(data.get("submitted_at")),
            reviewed_at=_parse_dt(data.get("reviewed_at")),
            verified_at=_parse_dt(data.get("verified_at")),
            rejected_at=_parse_dt(data.get("rejected_at")),
            expires_at=_parse_dt(data.get("expires_at")),
            reviewed_by=data.get("reviewed_by"),
            review_notes=data.get("review_notes"),
            rejection_reason=data.get("rejection_reason"),
            risk_level=RiskLevel(data["risk_level"]) if data.get("risk_level") else None,
            risk_notes=data.get("risk_notes"),
            requires_manual_review=bool(data.get("requires_manual_review", False)),
            flagged_for_review=bool(data.get("flagged_for_review", False)),
            flag_reason=data.get("flag_reason"),
            status_history=[StatusHistoryEntry.from_dict(h) for h in data.get("status_history", [])],
            version=int(data.get("version", 0)),
        )
