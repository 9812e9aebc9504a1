"""
Routes: submit the application and follow its progress.
"""

from fastapi import APIRouter, Depends, HTTPException

from admissions.api.deps import require_session
from admissions.api.schemas.responses import ProgressResponse, SubmissionResponse
from admissions.core.use_cases.application_session import ApplicationSession
from admissions.core.use_cases.progress_tracker import SubmissionStage

router = APIRouter()


@router.post("/sessions/{uid}/submit", response_model=SubmissionResponse)
async def submit_application(session: ApplicationSession = Depends(require_session)):
    """
    Submit the application.

    Returns as soon as the submitted record exists. Staged documents keep
    uploading in the background; poll the progress endpoint to follow them.
    """
    result = await session.submit()
    if result.validation_errors:
        raise HTTPException(
            status_code=400,
            detail={"message": result.message, "errors": result.validation_errors},
        )
    if not result.success and result.stage is SubmissionStage.ERROR:
        raise HTTPException(status_code=502, detail={"message": result.message})
    if not result.success:
        raise HTTPException(status_code=409, detail={"message": result.message})
    return SubmissionResponse(
        success=result.success,
        stage=result.stage.value,
        application_id=result.application_id,
        message=result.message,
        promoted=result.promoted,
        uploads_pending=result.uploads_pending,
        already_submitted=result.already_submitted,
        savings_notice=result.savings_notice,
    )


@router.get("/sessions/{uid}/progress", response_model=ProgressResponse)
async def submission_progress(session: ApplicationSession = Depends(require_session)):
    return ProgressResponse.from_snapshot(session.progress())


@router.post("/sessions/{uid}/submit/cancel", response_model=ProgressResponse)
async def cancel_submission(session: ApplicationSession = Depends(require_session)):
    """Stop progress reporting. Uploads already in flight are not aborted."""
    if not session.cancel_submission():
        raise HTTPException(status_code=409, detail={"message": "There is no submission in progress."})
    return ProgressResponse.from_snapshot(session.progress())
