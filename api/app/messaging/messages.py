from typing import Any

from pydantic import BaseModel, Field

from app.services.records import VerificationDataType, VerificationStatus


class CreateVerificationMessage(BaseModel):
    verification_id: str
    inn: str
    requested_types: list[VerificationDataType]
    author_email: str


class VerificationCompletedMessage(BaseModel):
    verification_id: str = Field(min_length=1)
    status: VerificationStatus
    error: str | None = None


class VerificationDataMessage(BaseModel):
    verification_id: str = Field(min_length=1)
    data_type: VerificationDataType
    data: Any
