"""
Routes: document slots (upload, remove, stage for submission).
"""

from fastapi import APIRouter, Depends, File, UploadFile

from admissions.api.deps import require_session, slot_error
from admissions.api.schemas.responses import (
    DocumentResponse,
    SlotResponse,
    SlotSummaryResponse,
    StagedFilesResponse,
)
from admissions.core.entities.document import DocumentFile, DocumentType
from admissions.core.use_cases.application_session import ApplicationSession
from admissions.core.use_cases.document_slots import SlotOperationResult

router = APIRouter()


async def _read_files(files: list[UploadFile]) -> list[DocumentFile]:
    return [
        DocumentFile(
            file_name=f.filename or "upload",
            content=await f.read(),
            content_type=f.content_type or "application/octet-stream",
        )
        for f in files
    ]


def _slot_response(result: SlotOperationResult) -> SlotResponse:
    if not result.success:
        raise slot_error(result.code, result.error, result.remaining_capacity)
    return SlotResponse(
        doc_type=result.doc_type,
        documents=[DocumentResponse.from_entity(d) for d in result.documents],
        remaining_capacity=result.remaining_capacity,
    )


@router.get("/sessions/{uid}/documents", response_model=list[SlotSummaryResponse])
async def document_summary(session: ApplicationSession = Depends(require_session)):
    return [
        SlotSummaryResponse(
            doc_type=s.doc_type,
            count=s.count,
            remaining_capacity=s.remaining_capacity,
            missing=s.missing,
        )
        for s in session.documents.slot_summary()
    ]


@router.post("/sessions/{uid}/documents/{doc_type}", response_model=SlotResponse)
async def upload_documents(
    doc_type: DocumentType,
    files: list[UploadFile] = File(...),
    session: ApplicationSession = Depends(require_session),
):
    """
    Upload into a slot.

    Passport photo and identification document hold one file (replaced on
    upload); academic documents accept several, up to the configured cap.
    """
    result = await session.upload_documents(doc_type, await _read_files(files))
    return _slot_response(result)


@router.delete("/sessions/{uid}/documents/{doc_type}", response_model=SlotResponse)
async def remove_document(
    doc_type: DocumentType,
    index: int | None = None,
    session: ApplicationSession = Depends(require_session),
):
    result = await session.remove_document(doc_type, index)
    return _slot_response(result)


@router.post("/sessions/{uid}/documents/{doc_type}/stage", response_model=StagedFilesResponse)
async def stage_documents(
    doc_type: DocumentType,
    files: list[UploadFile] = File(...),
    session: ApplicationSession = Depends(require_session),
):
    """Queue files to be uploaded in the background when the application is submitted."""
    problem = session.stage_files(doc_type, await _read_files(files))
    if problem:
        raise slot_error(*problem)
    staged = session.state.pending_files.get(doc_type, [])
    return StagedFilesResponse(doc_type=doc_type, staged=[f.file_name for f in staged])
