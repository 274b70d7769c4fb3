from __future__ import annotations

from app.services.data_index import VerificationDataIndex
from app.services.errors import RepositoryNotFoundError, RepositoryValidationError
from app.services.records import (
    DATA_TYPE_FIELDS,
    VerificationDataResult,
    VerificationRecord,
    VerificationView,
)
from app.services.store import VerificationStore


class VerificationQueries:
    def __init__(self, store: VerificationStore, data_index: VerificationDataIndex) -> None:
        self.store = store
        self.data_index = data_index

    async def get(self, verification_id: str) -> VerificationView:
        if not verification_id:
            raise RepositoryValidationError("verification id cannot be empty")

        record = await self.store.fetch_verification(verification_id)
        if record is None:
            raise RepositoryNotFoundError(f"verification not found: {verification_id}")

        listing = await self.data_index.list_by_verification(verification_id)
        return VerificationView(verification=record, data=listing.items, missing=listing.missing)

    async def list_verifications(self, limit: int | None = None, offset: int | None = None) -> list[VerificationRecord]:
        if limit is not None and limit < 0:
            raise RepositoryValidationError(f"limit must be non-negative, got {limit}")
        if offset is not None and offset < 0:
            raise RepositoryValidationError(f"offset must be non-negative, got {offset}")
        return await self.store.fetch_verifications(limit, offset)

    async def get_with_typed_view(self, verification_id: str) -> VerificationDataResult:
        view = await self.get(verification_id)
        fields = dict.fromkeys(DATA_TYPE_FIELDS.values())
        for item in view.data:
            field_name = DATA_TYPE_FIELDS.get(item.data_type)
            if field_name is not None:
                fields[field_name] = item.data
        return VerificationDataResult(view=view, fields=fields)
