"""
Routes: submitted applications of the signed-in user.
"""

from fastapi import APIRouter, Depends, HTTPException

from admissions.api.deps import require_session
from admissions.api.schemas.responses import ApplicationResponse, SectionUpdateRequest, SectionUpdateResponse
from admissions.core.entities.draft import FormSection
from admissions.core.interfaces.record_store import RecordStoreError
from admissions.core.use_cases.application_session import ApplicationSession

router = APIRouter()


@router.get("/sessions/{uid}/applications", response_model=list[ApplicationResponse])
async def list_applications(session: ApplicationSession = Depends(require_session)):
    try:
        applications = await session.list_applications()
    except RecordStoreError as e:
        raise HTTPException(status_code=502, detail={"message": "Could not load your applications."}) from e
    return [ApplicationResponse.from_entity(app) for app, _ in applications]


@router.patch("/sessions/{uid}/applications/{application_id}/sections/{section}", response_model=SectionUpdateResponse)
async def update_section(
    application_id: str,
    section: FormSection,
    req: SectionUpdateRequest,
    session: ApplicationSession = Depends(require_session),
):
    """Edit one section of a submitted application."""
    try:
        result = await session.update_application_section(application_id, section, req.values)
    except RecordStoreError as e:
        raise HTTPException(status_code=502, detail={"message": "Could not save your changes."}) from e
    if result.not_found:
        raise HTTPException(status_code=404, detail={"message": result.message})
    if not result.success:
        raise HTTPException(status_code=400, detail={"message": result.message, "errors": result.errors})
    return SectionUpdateResponse(
        application_id=result.application_id,
        section=result.section,
        form_data=result.form_data,
        message=result.message,
    )
