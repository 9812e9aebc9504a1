"""
Shared route dependencies.
"""

from fastapi import Depends, HTTPException

from admissions.api.sessions import SessionRegistry, get_registry
from admissions.core.use_cases.application_session import ApplicationSession
from admissions.core.use_cases.document_slots import SlotError

SLOT_ERROR_STATUS = {
    SlotError.BUSY: 409,
    SlotError.NO_FILES: 400,
    SlotError.TOO_MANY_FILES: 400,
    SlotError.EMPTY_FILE: 400,
    SlotError.TOO_LARGE: 413,
    SlotError.UNSUPPORTED_TYPE: 415,
    SlotError.CAPACITY: 422,
    SlotError.INVALID_INDEX: 400,
    SlotError.NOTHING_TO_REMOVE: 404,
    SlotError.UPSTREAM: 502,
}


def require_session(uid: str, registry: SessionRegistry = Depends(get_registry)) -> ApplicationSession:
    session = registry.get(uid)
    if session is None:
        raise HTTPException(status_code=404, detail="No open session for this user. Start one first.")
    return session


def slot_error(code: SlotError, message: str, remaining_capacity: int | None = None) -> HTTPException:
    detail = {"code": code.value, "message": message}
    if remaining_capacity is not None:
        detail["remaining_capacity"] = remaining_capacity
    return HTTPException(status_code=SLOT_ERROR_STATUS[code], detail=detail)
