"""
Pydantic schemas for API requests
"""

from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field

from ..kyc import PersonalInfo, IdentityDocument, KYCDocument, DocumentType, IdType


# Pricing schemas
class GoldQuoteRequest(BaseModel):
    grams: str = Field(..., description="Decimal grams as string")
    currency: str = Field("USD", description="Currency code (USD, EUR, GBP, EGP, SAR)")


class DeliveryQuoteRequest(BaseModel):
    grams: str = Field(..., description="Decimal grams as string")
    delivery_type: str = Field(..., description="Delivery type (standard, express, insured)")
    currency: str = "USD"


class ProfitLossRequest(BaseModel):
    grams: str
    average_purchase_price: str = Field(..., description="Average USD price paid per gram")
    current_price: Optional[str] = None


# KYC schemas
class PersonalInfoModel(BaseModel):
    full_name: str
    date_of_birth: date
    nationality: str = Field(..., description="ISO 3166-1 alpha-2 code")
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    country: str
    postal_code: str
    phone_number: Optional[str] = None

    def to_personal_info(self) -> PersonalInfo:
        return PersonalInfo(**self.model_dump())


class IdentityDocumentModel(BaseModel):
    id_type: str = Field(..., description="passport, national_id or drivers_license")
    id_number: str
    issuing_country: str
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None

    def to_identity_document(self) -> IdentityDocument:
        return IdentityDocument(
            id_type=IdType(self.id_type),
            id_number=self.id_number,
            issuing_country=self.issuing_country,
            issue_date=self.issue_date,
            expiry_date=self.expiry_date
        )


class CreateKYCCaseRequest(BaseModel):
    personal_info: PersonalInfoModel
    identity_document: IdentityDocumentModel


class UploadDocumentRequest(BaseModel):
    document_type: str
    file_url: str
    file_name: str
    file_size: int
    mime_type: str

    def to_document(self) -> KYCDocument:
        return KYCDocument(
            document_type=DocumentType(self.document_type),
            file_url=self.file_url,
            file_name=self.file_name,
            file_size=self.file_size,
            mime_type=self.mime_type
        )


class ApproveKYCRequest(BaseModel):
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class RejectKYCRequest(BaseModel):
    reason: str
    expected_version: Optional[int] = None


class ReviewDocumentRequest(BaseModel):
    approved: bool
    reason: Optional[str] = None


class FlagKYCRequest(BaseModel):
    reason: str


class AssessRiskRequest(BaseModel):
    risk_level: str = Field(..., description="low, medium or high")
    notes: Optional[str] = None


class BulkApproveRequest(BaseModel):
    user_ids: List[str]
    notes: Optional[str] = None
