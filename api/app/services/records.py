from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, get_args

VerificationStatus = Literal["IN_PROCESS", "PROCESSING", "COMPLETED", "ERROR", "COMPANY_NOT_FOUND"]
VerificationDataType = Literal[
    "BASIC_INFORMATION",
    "ACTIVITIES",
    "ADDRESSES_BY_CREDINFORM",
    "ADDRESSES_BY_UNIFIED_STATE_REGISTER",
    "AFFILIATED_COMPANIES",
    "ARBITRAGE_STATISTICS",
]

VERIFICATION_STATUSES = frozenset(get_args(VerificationStatus))
TERMINAL_STATUSES = frozenset({"COMPLETED", "ERROR", "COMPANY_NOT_FOUND"})
INITIAL_STATUS: VerificationStatus = "IN_PROCESS"
DATA_TYPES: tuple[str, ...] = get_args(VerificationDataType)

# Typed-view projection: one entry per data type, field name on the result.
DATA_TYPE_FIELDS: dict[str, str] = {
    "BASIC_INFORMATION": "basic_information",
    "ACTIVITIES": "activities",
    "ADDRESSES_BY_CREDINFORM": "addresses_by_credinform",
    "ADDRESSES_BY_UNIFIED_STATE_REGISTER": "addresses_by_unified_state_register",
    "AFFILIATED_COMPANIES": "affiliated_companies",
    "ARBITRAGE_STATISTICS": "arbitrage_statistics",
}


@dataclass(slots=True)
class VerificationRecord:
    id: str
    inn: str
    status: str
    author_email: str
    requested_data_types: list[str]
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(slots=True)
class DataRecord:
    verification_id: str
    data_type: str
    content_hash: str
    created_at: datetime


@dataclass(slots=True)
class VerificationDataItem:
    data_type: str
    payload: str
    content_hash: str
    created_at: datetime
    data: Any = None


@dataclass(slots=True)
class DataListing:
    """Resolved data of one verification; ``missing`` holds records whose hash did not resolve
    or whose cached payload is not valid JSON."""

    items: list[VerificationDataItem] = field(default_factory=list)
    missing: list[DataRecord] = field(default_factory=list)


@dataclass(slots=True)
class VerificationView:
    verification: VerificationRecord
    data: list[VerificationDataItem] = field(default_factory=list)
    missing: list[DataRecord] = field(default_factory=list)


@dataclass(slots=True)
class VerificationDataResult:
    view: VerificationView
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, data_type: str) -> Any:
        return self.fields.get(DATA_TYPE_FIELDS[data_type])
