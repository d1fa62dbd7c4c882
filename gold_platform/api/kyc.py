"""
KYC workflow endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import GoldPlatform, get_platform, get_caller
from .schemas import (
    CreateKYCCaseRequest,
    UploadDocumentRequest,
    ApproveKYCRequest,
    RejectKYCRequest,
    ReviewDocumentRequest,
    FlagKYCRequest,
    AssessRiskRequest,
    BulkApproveRequest
)
from ..kyc import DocumentType, RiskLevel
from ..rbac import CallerIdentity


router = APIRouter()


def _case_summary(case) -> dict:
    return {
        "user_id": case.user_id,
        "status": case.status.value,
        "full_name": case.personal_info.full_name,
        "submitted_at": case.submitted_at.isoformat() if case.submitted_at else None,
        "expires_at": case.expires_at.isoformat() if case.expires_at else None,
        "documents": len(case.documents),
        "version": case.version
    }


# Admin queues are registered before the per-user routes

@router.get("/admin/pending")
async def get_pending_reviews(
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    """Cases waiting for a reviewer decision"""
    cases = system.kyc_service.pending_reviews(caller)
    return {"cases": [_case_summary(c) for c in cases], "count": len(cases)}


@router.get("/admin/expiring")
async def get_expiring(
    days: Optional[int] = None,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    """Verified cases expiring within the window"""
    cases = system.kyc_service.expiring(caller, days)
    return {"cases": [_case_summary(c) for c in cases], "count": len(cases)}


@router.get("/admin/stats")
async def get_statistics(
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    stats = system.kyc_service.statistics(caller)
    stats["average_processing_hours"] = str(stats["average_processing_hours"])
    return stats


@router.post("/admin/bulk-approve")
async def bulk_approve(
    request: BulkApproveRequest,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    return system.kyc_service.bulk_approve(caller, request.user_ids, request.notes)


@router.post("/{user_id}", status_code=status.HTTP_201_CREATED)
async def create_case(
    user_id: str,
    request: CreateKYCCaseRequest,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    """Open a KYC case for a user"""
    case = system.kyc_service.create_case(
        caller,
        user_id,
        personal_info=request.personal_info.to_personal_info(),
        identity_document=request.identity_document.to_identity_document()
    )
    return {"case_id": case.id, "status": case.status.value, "message": "KYC case created successfully"}


@router.get("/{user_id}")
async def get_case(
    user_id: str,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    """Get the full KYC case of a user"""
    case = system.kyc_service.view_case(caller, user_id)
    result = case.to_dict()
    result["is_expired"] = case.is_expired()
    result["needs_renewal"] = case.needs_renewal(window_days=system.kyc_service.renewal_window_days)
    return result


@router.post("/{user_id}/submit")
async def submit_case(
    user_id: str,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    """Send the case for review"""
    case = system.kyc_service.submit(caller, user_id)
    return {"status": case.status.value, "version": case.version, "message": "KYC submitted for review"}


@router.put("/{user_id}/documents")
async def upload_document(
    user_id: str,
    request: UploadDocumentRequest,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    """Attach a document, replacing one of the same type"""
    doc = system.kyc_service.add_document(caller, user_id, request.to_document())
    return doc.to_dict()


@router.delete("/{user_id}/documents/{document_type}")
async def remove_document(
    user_id: str,
    document_type: str,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    removed = system.kyc_service.remove_document(caller, user_id, DocumentType(document_type))
    return {"removed": removed}


@router.post("/{user_id}/documents/{document_type}/review")
async def review_document(
    user_id: str,
    document_type: str,
    request: ReviewDocumentRequest,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    doc = system.kyc_service.verify_document(
        caller, user_id, DocumentType(document_type), request.approved, request.reason
    )
    return doc.to_dict()


@router.post("/{user_id}/approve")
async def approve_case(
    user_id: str,
    request: ApproveKYCRequest,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    """Approve a KYC case"""
    case = system.kyc_service.approve(caller, user_id, request.notes, request.expected_version)
    return {
        "status": case.status.value,
        "expires_at": case.expires_at.isoformat(),
        "version": case.version,
        "message": "KYC approved successfully"
    }


@router.post("/{user_id}/reject")
async def reject_case(
    user_id: str,
    request: RejectKYCRequest,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    """Reject a KYC case"""
    case = system.kyc_service.reject(caller, user_id, request.reason, request.expected_version)
    return {"status": case.status.value, "version": case.version, "message": "KYC rejected"}


@router.post("/{user_id}/flag")
async def flag_case(
    user_id: str,
    request: FlagKYCRequest,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    case = system.kyc_service.flag_for_review(caller, user_id, request.reason)
    return {"flagged_for_review": case.flagged_for_review, "version": case.version}


@router.post("/{user_id}/risk")
async def assess_risk(
    user_id: str,
    request: AssessRiskRequest,
    caller: CallerIdentity = Depends(get_caller),
    system: GoldPlatform = Depends(get_platform)
):
    case = system.kyc_service.assess_risk(caller, user_id, RiskLevel(request.risk_level), request.notes)
    return {
        "risk_level": case.risk_level.value,
        "requires_manual_review": case.requires_manual_review,
        "version": case.version
    }
