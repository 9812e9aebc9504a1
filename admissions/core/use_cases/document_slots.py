"""
Use Case: Document Slots

Per-document-type upload/removal against the blob store and the record
store. Each operation is split into:
  1. checks that need no I/O (type, size, capacity, busy slot)
  2. local state change + network calls
  3. exact rollback of the local state on failure

Metadata is persisted immediately after every change, never debounced.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from admissions.core.entities.document import (
    ALLOWED_CONTENT_TYPES,
    DocumentFile,
    DocumentMetadata,
    DocumentType,
    build_storage_path,
)
from admissions.core.entities.form_state import ApplicationFormState
from admissions.core.interfaces.blob_store import IBlobStore, StoredObject
from admissions.core.interfaces.record_store import IRecordStore

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class SlotError(str, Enum):
    BUSY = "busy"
    NO_FILES = "no_files"
    TOO_MANY_FILES = "too_many_files"
    EMPTY_FILE = "empty_file"
    TOO_LARGE = "too_large"
    UNSUPPORTED_TYPE = "unsupported_type"
    CAPACITY = "capacity"
    INVALID_INDEX = "invalid_index"
    NOTHING_TO_REMOVE = "nothing_to_remove"
    UPSTREAM = "upstream"


class OwnerKind(str, Enum):
    DRAFT = "draft"
    APPLICATION = "application"


@dataclass(frozen=True)
class DocumentOwner:
    kind: OwnerKind
    id: str


@dataclass
class SlotState:
    loading: bool = False
    deleting: bool = False

    @property
    def busy(self) -> bool:
        return self.loading or self.deleting


@dataclass
class SlotOperationResult:
    success: bool
    doc_type: DocumentType
    documents: list[DocumentMetadata] = field(default_factory=list)
    error: str | None = None
    remaining_capacity: int | None = None
    busy: bool = False
    code: SlotError | None = None


@dataclass
class SlotSummary:
    doc_type: DocumentType
    count: int
    remaining_capacity: int | None
    required: bool = True

    @property
    def missing(self) -> bool:
        return self.required and self.count == 0


class DocumentSlotManager:
    """
    Use Case: manages the three document slots of the current owner.

    The owner (durable draft or submitted application) is resolved lazily
    through ``owner_resolver`` so a draft can be created on first upload.
    """

    def __init__(
        self,
        record_store: IRecordStore,
        blob_store: IBlobStore,
        state: ApplicationFormState,
        owner_resolver: Callable[[], Awaitable[DocumentOwner]],
        multi_slot_cap: int = 5,
        max_document_size_mb: float = 10,
        max_photo_size_mb: float = 5,
        clock: Callable[[], datetime] | None = None,
    ):
        self._records = record_store
        self._blobs = blob_store
        self._state = state
        self._resolve_owner = owner_resolver
        self._cap = multi_slot_cap
        self._max_document_bytes = int(max_document_size_mb * MB)
        self._max_photo_bytes = int(max_photo_size_mb * MB)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._slots = {t: SlotState() for t in DocumentType}

    # ── Queries ───────────────────────────────────────
    def slot_state(self, doc_type: DocumentType) -> SlotState:
        return self._slots[doc_type]

    def remaining_capacity(self, doc_type: DocumentType) -> int | None:
        if not doc_type.is_multi_slot:
            return None
        return max(0, self._cap - self._state.documents.count(doc_type))

    def slot_summary(self) -> list[SlotSummary]:
        return [
            SlotSummary(
                doc_type=t,
                count=self._state.documents.count(t),
                remaining_capacity=self.remaining_capacity(t),
            )
            for t in DocumentType
        ]

    # ── Checks (no I/O) ───────────────────────────────
    def check_files(self, doc_type: DocumentType, files: list[DocumentFile]) -> tuple[SlotError, str] | None:
        """Returns (code, user-facing message) for the first problem, or None when acceptable."""
        if not files:
            return SlotError.NO_FILES, "Select a file to upload."
        if not doc_type.is_multi_slot and len(files) > 1:
            return SlotError.TOO_MANY_FILES, f"{doc_type.label} accepts a single file."
        allowed = ALLOWED_CONTENT_TYPES[doc_type]
        limit = self._max_photo_bytes if doc_type is DocumentType.PASSPORT_PHOTO else self._max_document_bytes
        for f in files:
            if f.size_bytes == 0:
                return SlotError.EMPTY_FILE, f"{f.file_name} is empty. Choose another file."
            if f.size_bytes > limit:
                return SlotError.TOO_LARGE, f"{f.file_name} is too large. {doc_type.label} files must be under {limit // MB}MB."
            if f.content_type not in allowed:
                return SlotError.UNSUPPORTED_TYPE, f"{f.file_name} has an unsupported type for {doc_type.label}."
        return None

    def check_capacity(self, doc_type: DocumentType, incoming: int) -> int | None:
        """Remaining capacity when ``incoming`` would exceed the cap, else None."""
        if not doc_type.is_multi_slot:
            return None
        existing = self._state.documents.count(doc_type)
        if existing + incoming > self._cap:
            return max(0, self._cap - existing)
        return None

    # ── Upload ────────────────────────────────────────
    async def upload(self, doc_type: DocumentType, files: DocumentFile | list[DocumentFile]) -> SlotOperationResult:
        """
        Single slot: replaces the current document. Multi slot: appends.

        Rejected before any I/O when the slot is busy, a file is invalid, or
        the collection cap would be exceeded.
        """
        files = [files] if isinstance(files, DocumentFile) else list(files)
        slot = self._slots[doc_type]
        if slot.busy:
            return self._busy(doc_type)

        problem = self.check_files(doc_type, files)
        if problem:
            code, message = problem
            return SlotOperationResult(success=False, doc_type=doc_type, error=message, code=code,
                                       documents=self._state.documents.get(doc_type))

        remaining = self.check_capacity(doc_type, len(files))
        if remaining is not None:
            return SlotOperationResult(
                success=False,
                doc_type=doc_type,
                documents=self._state.documents.get(doc_type),
                remaining_capacity=remaining,
                code=SlotError.CAPACITY,
                error=(
                    f"You can upload up to {self._cap} {doc_type.label.lower()}. "
                    f"{remaining} more can be added."
                ),
            )

        slot.loading = True
        previous = self._state.documents.get(doc_type)
        stored: list[StoredObject] = []
        try:
            owner = await self._resolve_owner()
            # resolving the owner can load the stored draft's documents
            previous = self._state.documents.get(doc_type)
            ts = int(time.time() * 1000)
            new_items = []
            for i, f in enumerate(files):
                path = build_storage_path(doc_type, owner.id, self._state.owner_email, f, ts + i)
                obj = await self._blobs.put_object(f.content, path, f.content_type)
                stored.append(obj)
                new_items.append(DocumentMetadata(
                    file_name=f.file_name,
                    size_bytes=f.size_bytes,
                    url=obj.url,
                    owner_id=owner.id,
                    uploaded_at=self._clock(),
                    content_type=f.content_type,
                    storage_path=obj.path,
                ))

            items = previous + new_items if doc_type.is_multi_slot else new_items
            self._apply(doc_type, items)
            await self._persist(owner, doc_type, items)
        except Exception as e:
            logger.error(f"Upload of {doc_type.value} failed: {e}")
            self._apply(doc_type, previous)
            await self._discard_blobs([o.url for o in stored])
            return SlotOperationResult(
                success=False,
                doc_type=doc_type,
                documents=previous,
                remaining_capacity=self.remaining_capacity(doc_type),
                code=SlotError.UPSTREAM,
                error=f"Uploading {doc_type.label} failed. Please try again.",
            )
        finally:
            slot.loading = False

        if not doc_type.is_multi_slot:
            await self._discard_blobs([d.url for d in previous])
        logger.info(f"Uploaded {len(files)} file(s) to {doc_type.value} of {owner.kind.value} {owner.id}")
        return SlotOperationResult(
            success=True,
            doc_type=doc_type,
            documents=self._state.documents.get(doc_type),
            remaining_capacity=self.remaining_capacity(doc_type),
        )

    # ── Removal ───────────────────────────────────────
    async def remove(self, doc_type: DocumentType, index: int | None = None) -> SlotOperationResult:
        """Removes the single-slot document, or the multi-slot entry at ``index``."""
        slot = self._slots[doc_type]
        if slot.busy:
            return self._busy(doc_type)

        current = self._state.documents.get(doc_type)
        if doc_type.is_multi_slot:
            if index is None or not 0 <= index < len(current):
                return SlotOperationResult(success=False, doc_type=doc_type, documents=current, code=SlotError.INVALID_INDEX,
                                           error=f"Choose which {doc_type.label.lower()} entry to remove.")
        elif index is not None:
            return SlotOperationResult(success=False, doc_type=doc_type, documents=current, code=SlotError.INVALID_INDEX,
                                       error=f"{doc_type.label} has a single document; no index expected.")
        if not current:
            return SlotOperationResult(success=False, doc_type=doc_type, documents=current, code=SlotError.NOTHING_TO_REMOVE,
                                       error=f"There is no {doc_type.label.lower()} to remove.")

        slot.deleting = True
        removed = current[index] if doc_type.is_multi_slot else current[0]
        try:
            self._apply(doc_type, [d for d in current if d is not removed])
            owner = await self._resolve_owner()
            await self._records.delete_document_metadata(owner.id, doc_type, index)
        except Exception as e:
            logger.error(f"Removing {doc_type.value} failed: {e}")
            self._apply(doc_type, current)
            return SlotOperationResult(
                success=False,
                doc_type=doc_type,
                documents=current,
                remaining_capacity=self.remaining_capacity(doc_type),
                code=SlotError.UPSTREAM,
                error=f"Removing {removed.file_name} failed. Please try again.",
            )
        finally:
            slot.deleting = False

        await self._discard_blobs([removed.url])
        logger.info(f"Removed {removed.file_name} from {doc_type.value} of {owner.id}")
        return SlotOperationResult(
            success=True,
            doc_type=doc_type,
            documents=self._state.documents.get(doc_type),
            remaining_capacity=self.remaining_capacity(doc_type),
        )

    # ── Internals ─────────────────────────────────────
    def _apply(self, doc_type: DocumentType, items: list[DocumentMetadata]) -> None:
        """Replaces one slot on the current state; other slots are left as they are now."""
        updated = self._state.documents.copy()
        updated.set(doc_type, items)
        self._state.set_documents(updated)

    def _busy(self, doc_type: DocumentType) -> SlotOperationResult:
        return SlotOperationResult(
            success=False,
            doc_type=doc_type,
            documents=self._state.documents.get(doc_type),
            busy=True,
            code=SlotError.BUSY,
            error=f"{doc_type.label} is still being updated. Wait for it to finish.",
        )

    async def _persist(self, owner: DocumentOwner, doc_type: DocumentType, items: list[DocumentMetadata]) -> None:
        fields = {"document_slot": (doc_type, list(items))}
        if owner.kind is OwnerKind.DRAFT:
            await self._records.update_draft(owner.id, fields)
        else:
            await self._records.update_submitted_fields(owner.id, fields)

    async def _discard_blobs(self, urls: list[str]) -> None:
        """Best effort: an orphaned blob is harmless, a failed cleanup is only logged."""
        for url in urls:
            try:
                await self._blobs.delete_object(url)
            except Exception as e:
                logger.warning(f"Could not delete superseded object {url}: {e}")
