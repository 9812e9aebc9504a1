"""
Routes: session lifecycle and draft editing.
"""

from fastapi import APIRouter, Depends

from admissions.api.deps import require_session
from admissions.api.schemas.responses import (
    FieldsRequest,
    SaveResponse,
    SectionRequest,
    SessionResponse,
    StartSessionRequest,
    documents_response,
)
from admissions.api.sessions import SessionRegistry, get_registry
from admissions.core.use_cases.application_session import ApplicationSession

router = APIRouter()


def _session_response(session: ApplicationSession, view_mode: bool = False, recovered: bool = False) -> SessionResponse:
    state = session.state
    return SessionResponse(
        uid=state.owner_id,
        email=state.owner_email,
        draft_id=state.draft_id,
        application_id=state.application_id,
        active_section=state.active_section,
        form_data=state.form_data,
        documents=documents_response(state.documents),
        save_status=session.drafts.status.value,
        last_saved_at=session.drafts.last_saved_at,
        view_mode=view_mode or state.is_submitted,
        recovered_from_fallback=recovered,
        load_error=session.drafts.load_error,
    )


def _save_response(session: ApplicationSession, scheduled: bool = False, result=None) -> SaveResponse:
    return SaveResponse(
        status=session.drafts.status.value,
        draft_id=session.state.draft_id,
        autosave_scheduled=scheduled,
        used_fallback=bool(result and result.used_fallback),
        error=result.error if result and not result.success else None,
        last_saved_at=session.drafts.last_saved_at,
    )


@router.post("/sessions", response_model=SessionResponse)
async def start_session(req: StartSessionRequest, registry: SessionRegistry = Depends(get_registry)):
    """
    Open (or reopen) the application form of a signed-in user.

    Loads the open draft, back-fills empty identity fields from the
    profile, or opens the latest submitted application in view mode.
    """
    session, started = await registry.start(req.email, req.uid, req.profile)
    return _session_response(
        session,
        view_mode=started.view_mode,
        recovered=started.hydration.recovered_from_fallback,
    )


@router.get("/sessions/{uid}", response_model=SessionResponse)
async def get_session(session: ApplicationSession = Depends(require_session)):
    return _session_response(session)


@router.delete("/sessions/{uid}")
async def close_session(uid: str, registry: SessionRegistry = Depends(get_registry)):
    closed = await registry.close(uid)
    return {"closed": closed}


@router.patch("/sessions/{uid}/fields", response_model=SaveResponse)
async def change_fields(req: FieldsRequest, session: ApplicationSession = Depends(require_session)):
    """Apply field edits; the draft is saved after the quiet period."""
    scheduled = session.change_fields(req.values)
    return _save_response(session, scheduled=scheduled)


@router.put("/sessions/{uid}/section", response_model=SaveResponse)
async def change_section(req: SectionRequest, session: ApplicationSession = Depends(require_session)):
    """Switch form section; the draft is saved immediately."""
    result = await session.change_section(req.section)
    return _save_response(session, result=result)


@router.post("/sessions/{uid}/save", response_model=SaveResponse)
async def save_now(session: ApplicationSession = Depends(require_session)):
    """Run a pending autosave right away."""
    await session.drafts.flush()
    return _save_response(session)
