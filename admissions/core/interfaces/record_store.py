"""
Contract: Record Store

Remote store for drafts and submitted applications. Implementations
(SQL database, document database, in-memory) must give read-after-write
consistency for a single owner.
"""

from abc import ABC, abstractmethod

from admissions.core.entities.application import SubmittedApplication
from admissions.core.entities.document import DocumentType
from admissions.core.entities.draft import Draft


class RecordStoreError(Exception):
    """The record store could not complete a read or write."""


class RecordNotFoundError(RecordStoreError):
    """The addressed draft or application does not exist."""


class IRecordStore(ABC):
    """
    Port: Record Store

    All methods are coroutines; adapters around blocking clients must run
    them off the event loop.
    """

    @abstractmethod
    async def get_draft_by_owner_email(self, owner_email: str) -> Draft | None:
        """
        Returns the canonical (non-submitted) draft of an owner.

        Args:
            owner_email: Owner e-mail, compared case-insensitively.

        Returns:
            The draft, or None when the owner has none.
        """
        ...

    @abstractmethod
    async def create_draft(self, draft: Draft) -> Draft:
        """
        Creates a durable draft.

        When the owner already has a draft the existing one is returned
        instead of creating a second.

        Returns:
            The stored draft with its durable id.
        """
        ...

    @abstractmethod
    async def update_draft(self, draft_id: str, fields: dict) -> None:
        """
        Updates draft fields. Recognised keys: ``form_data``,
        ``active_section``, ``last_saved_at``, ``documents`` (whole
        DocumentSlots) and ``document_slot`` (a ``(DocumentType, items)``
        pair that replaces one slot only).
        """
        ...

    @abstractmethod
    async def promote_draft_to_submitted(self, draft_id: str, payload: dict) -> SubmittedApplication:
        """
        Turns a draft into a submitted application, keeping its documents.

        Idempotent: promoting an already promoted draft returns the
        application created the first time.
        """
        ...

    @abstractmethod
    async def create_submitted(self, application: SubmittedApplication) -> SubmittedApplication:
        """Creates a submitted application that has no draft behind it."""
        ...

    @abstractmethod
    async def get_submitted_by_email(self, owner_email: str) -> list[SubmittedApplication]:
        """Submitted applications of an owner, newest first."""
        ...

    @abstractmethod
    async def update_submitted_fields(self, application_id: str, fields: dict) -> None:
        """
        Updates a submitted application. Recognised keys: ``form_data``,
        ``documents``, ``document_slot``, ``status``, ``missing_documents``.
        """
        ...

    @abstractmethod
    async def delete_document_metadata(
        self,
        record_id: str,
        doc_type: DocumentType,
        index: int | None = None,
    ) -> None:
        """
        Removes document metadata from a draft or application.

        Args:
            record_id: Draft id or application id.
            doc_type: Slot to clear.
            index: Position in a multi-slot collection; None for single slots.
        """
        ...
