from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.services.records import (
    VerificationDataItem,
    VerificationDataResult,
    VerificationDataType,
    VerificationRecord,
    VerificationStatus,
    VerificationView,
)


class VerificationCreateRequest(BaseModel):
    inn: str
    requested_data_types: list[VerificationDataType] = Field(default_factory=list)


class VerificationOut(BaseModel):
    id: str
    inn: str
    status: VerificationStatus
    author_email: str
    requested_data_types: list[VerificationDataType] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: VerificationRecord) -> "VerificationOut":
        return cls(
            id=record.id,
            inn=record.inn,
            status=record.status,
            author_email=record.author_email,
            requested_data_types=record.requested_data_types,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class VerificationDataOut(BaseModel):
    data_type: VerificationDataType
    data: Any = None
    content_hash: str
    created_at: datetime

    @classmethod
    def from_item(cls, item: VerificationDataItem) -> "VerificationDataOut":
        return cls(
            data_type=item.data_type,
            data=item.data,
            content_hash=item.content_hash,
            created_at=item.created_at,
        )


class VerificationDetailOut(VerificationOut):
    data: list[VerificationDataOut] = Field(default_factory=list)
    missing_data_types: list[VerificationDataType] = Field(default_factory=list)

    @classmethod
    def from_view(cls, view: VerificationView) -> "VerificationDetailOut":
        base = VerificationOut.from_record(view.verification)
        return cls(
            **base.model_dump(),
            data=[VerificationDataOut.from_item(item) for item in view.data],
            missing_data_types=[record.data_type for record in view.missing],
        )


class VerificationDataResultOut(BaseModel):
    verification: VerificationDetailOut
    basic_information: Any = None
    activities: Any = None
    addresses_by_credinform: Any = None
    addresses_by_unified_state_register: Any = None
    affiliated_companies: Any = None
    arbitrage_statistics: Any = None

    @classmethod
    def from_result(cls, result: VerificationDataResult) -> "VerificationDataResultOut":
        return cls(verification=VerificationDetailOut.from_view(result.view), **result.fields)
