"""
Use Case: Draft Session

Keeps the in-progress application durably saved without user action:
  - at most one draft per owner (ensure_draft)
  - trailing-debounced autosave of the form snapshot
  - local-fallback write when the record store is unreachable
  - hydration that merges the account profile into empty identity fields
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from admissions.core.entities.document import DocumentSlots
from admissions.core.entities.draft import (
    Draft,
    DraftSnapshot,
    FormSection,
    is_temp_draft_id,
    make_temp_draft_id,
    merge_identity,
    overlay_edits,
    pending_backup_key,
)
from admissions.core.entities.form_state import ApplicationFormState
from admissions.core.interfaces.identity_provider import Identity
from admissions.core.interfaces.local_fallback_store import ILocalFallbackStore
from admissions.core.interfaces.record_store import IRecordStore
from admissions.core.use_cases.debounce import DebounceTimer

logger = logging.getLogger(__name__)

DEFAULT_QUIET_PERIOD = 1.5


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass
class SaveResult:
    success: bool
    draft_id: str | None
    used_fallback: bool = False
    error: str | None = None


@dataclass
class HydrationResult:
    success: bool
    draft_id: str | None
    form_data: dict
    draft: Draft | None = None
    recovered_from_fallback: bool = False
    error: str | None = None


@dataclass
class _LocalCopy:
    key: str
    snapshot: DraftSnapshot
    baseline: dict | None = None

    def form_over(self, stored: dict) -> dict:
        """Form data this copy restores on top of the stored draft's."""
        if self.baseline is None:
            return dict(self.snapshot.form_data)
        return overlay_edits(stored, self.snapshot.form_data, self.baseline)


class DraftSessionManager:
    """
    Use Case: owns the draft of one form state.

    Dependencies come through the constructor; the clock is injectable so
    saved timestamps are deterministic in tests.
    """

    def __init__(
        self,
        record_store: IRecordStore,
        fallback_store: ILocalFallbackStore,
        state: ApplicationFormState,
        quiet_period: float = DEFAULT_QUIET_PERIOD,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = record_store
        self._fallback = fallback_store
        self._state = state
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._timer = DebounceTimer(quiet_period, self._autosave)
        self._owner_locks: dict[str, asyncio.Lock] = {}
        self._drafts: dict[str, Draft] = {}
        self._save_lock = asyncio.Lock()
        self._listeners: list[Callable[[SaveStatus], None]] = []
        self._status = SaveStatus.IDLE

        self.recoverable_error: str | None = None
        self.last_saved_at: datetime | None = None
        self.load_error: str | None = None
        # Form and section the user started from after a failed load; edits are
        # measured against it until the stored draft has been fetched.
        self._load_baseline: tuple[dict, FormSection] | None = None

    # ── Status signal ─────────────────────────────────
    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def autosave_pending(self) -> bool:
        return self._timer.pending

    def subscribe(self, listener: Callable[[SaveStatus], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_status(self, status: SaveStatus) -> None:
        self._status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.warning(f"Save-status listener failed: {e}")

    # ── Draft identity ────────────────────────────────
    async def ensure_draft(
        self,
        owner_email: str,
        owner_id: str,
        snapshot: DraftSnapshot | None = None,
    ) -> Draft:
        """
        Returns the owner's draft, creating it on first use.

        Concurrent callers for the same owner are serialised on a
        per-owner lock and converge on one durable id.

        Raises:
            RecordStoreError: the store could neither find nor create it.
        """
        key = owner_email.strip().lower()
        lock = self._owner_locks.setdefault(key, asyncio.Lock())
        async with lock:
            draft = self._drafts.get(key)
            if draft is None:
                draft = await self._store.get_draft_by_owner_email(key)
            if draft is None:
                snapshot = snapshot or self._current_snapshot()
                draft = await self._store.create_draft(Draft(
                    id="",
                    owner_email=key,
                    owner_id=owner_id,
                    form_data=dict(snapshot.form_data),
                    active_section=snapshot.active_section,
                    last_saved_at=snapshot.saved_at,
                    documents=self._state.documents.copy(),
                ))
                logger.info(f"Created draft {draft.id} for {key}")
            self._drafts[key] = draft
            if self._owns(key):
                if self._load_baseline is not None:
                    self._adopt_stored_draft(draft)
                self._reconcile(draft.id)
            return draft

    def _owns(self, owner_key: str) -> bool:
        return not self._state.owner_email or self._state.owner_email.strip().lower() == owner_key

    def _adopt_stored_draft(self, draft: Draft) -> None:
        """Keeps the stored draft after a failed load and applies only the edits made since."""
        baseline, baseline_section = self._load_baseline
        self._load_baseline = None
        self._state.replace_form_data(overlay_edits(draft.form_data, self._state.form_data, baseline))
        if self._state.active_section == baseline_section:
            self._state.set_section(draft.active_section)
        self._state.set_documents(draft.documents.copy())
        self.load_error = None
        logger.info(f"Stored draft {draft.id} loaded after an earlier failure; edits applied on top")

    def _reconcile(self, durable_id: str) -> None:
        """Atomically swaps a temporary id for the durable one."""
        previous = self._state.draft_id
        if previous == durable_id:
            return
        if is_temp_draft_id(previous):
            pending = pending_backup_key(self._state.owner_id)
            try:
                self._fallback.move(pending, durable_id)
            except Exception as e:
                logger.warning(f"Could not re-key local copy {pending} -> {durable_id}: {e}")
            logger.info(f"Draft id reconciled: {previous} -> {durable_id}")
        self._state.adopt_draft_id(durable_id)

    # ── Saving ────────────────────────────────────────
    async def save_draft(self, draft_id: str, snapshot: DraftSnapshot) -> SaveResult:
        """
        Persists a snapshot.

        A failed durable write falls back to the local store under the draft
        id, or under the owner's pending key while the draft is temporary.
        That still counts as a successful save, with the reason kept in
        ``recoverable_error``. Only both failing is an error.
        """
        async with self._save_lock:
            self._set_status(SaveStatus.SAVING)
            target = draft_id
            try:
                if is_temp_draft_id(target):
                    edited_blind = self._load_baseline is not None
                    draft = await self.ensure_draft(self._state.owner_email, self._state.owner_id, snapshot)
                    target = draft.id
                    if edited_blind:
                        snapshot = self._current_snapshot()
                await self._store.update_draft(target, {
                    "form_data": dict(snapshot.form_data),
                    "active_section": snapshot.active_section,
                    "last_saved_at": snapshot.saved_at,
                })
            except Exception as e:
                logger.warning(f"Durable save of draft {target} failed: {e}")
                return self._save_locally(target, snapshot, str(e))

            self._discard_local_copy(target)
            self.recoverable_error = None
            self.last_saved_at = snapshot.saved_at
            self._set_status(SaveStatus.SAVED)
            logger.debug(f"Draft {target} saved")
            return SaveResult(success=True, draft_id=target)

    def _save_locally(self, key: str, snapshot: DraftSnapshot, reason: str) -> SaveResult:
        payload = snapshot.to_dict()
        payload["draftId"] = key
        payload["ownerEmail"] = self._state.owner_email
        backup_key = pending_backup_key(self._state.owner_id) if is_temp_draft_id(key) else key
        if self._load_baseline is not None:
            payload["loadBaseline"] = dict(self._load_baseline[0])
        try:
            self._fallback.write(backup_key, payload)
        except Exception as e:
            logger.error(f"Local fallback save of draft {key} under {backup_key} failed: {e}")
            self._set_status(SaveStatus.ERROR)
            return SaveResult(
                success=False,
                draft_id=key,
                error="Your changes could not be saved. Check your connection and keep this page open.",
            )
        logger.warning(f"Draft {key} kept in local fallback store under {backup_key}")
        self.recoverable_error = reason
        self.last_saved_at = snapshot.saved_at
        self._set_status(SaveStatus.SAVED)
        return SaveResult(success=True, draft_id=key, used_fallback=True, error=reason)

    def _discard_local_copy(self, key: str) -> None:
        try:
            self._fallback.delete(key)
        except Exception as e:
            logger.warning(f"Could not clear local copy of draft {key}: {e}")

    def _current_snapshot(self) -> DraftSnapshot:
        return DraftSnapshot(
            form_data=self._state.snapshot(),
            active_section=self._state.active_section,
            saved_at=self._clock(),
        )

    # ── Autosave ──────────────────────────────────────
    def on_field_change(self, name: str, value) -> bool:
        """Applies an edit and (re)starts the quiet period. Returns whether autosave is armed."""
        self._state.set_field(name, value)
        return self.schedule_autosave()

    def on_fields_change(self, values: dict) -> bool:
        self._state.set_fields(values)
        return self.schedule_autosave()

    def schedule_autosave(self) -> bool:
        if not self._state.autosave_allowed:
            return False
        if self._state.draft_id is None:
            self._state.adopt_draft_id(make_temp_draft_id(self._state.owner_id, self._clock()))
        self._timer.schedule()
        return True

    def cancel_pending(self) -> bool:
        return self._timer.cancel()

    async def flush(self) -> None:
        await self._timer.flush()

    async def _autosave(self) -> None:
        if not self._state.autosave_allowed:
            return
        await self.save_draft(self._state.draft_id, self._current_snapshot())

    async def change_section(self, section: FormSection) -> SaveResult | None:
        """Switches section; the pending timer is dropped and the draft saved right away."""
        self._state.set_section(section)
        self._timer.cancel()
        if not self._state.autosave_allowed or self._state.draft_id is None:
            return None
        return await self.save_draft(self._state.draft_id, self._current_snapshot())

    def enter_view_mode(self) -> None:
        self._timer.cancel()
        self._state.is_submitted = True

    async def close(self) -> None:
        self._timer.cancel()
        await self._timer.wait_idle()

    # ── Hydration ─────────────────────────────────────
    async def hydrate(self, identity: Identity, profile: dict) -> HydrationResult:
        """
        Loads the owner's draft into the form state.

        A local-fallback snapshot newer than the durable draft wins and is
        re-queued for a durable save. Copies saved before the draft existed
        are found under the owner's pending key in every session. Store
        failures are reported in the result; the form stays usable with
        profile data only, and the first save fetches the stored draft again
        before writing so that only the edits made since are applied to it.
        """
        self._state.owner_email = identity.email
        self._state.owner_id = identity.uid
        self._state.is_loading = True
        self._load_baseline = None
        pending_key = pending_backup_key(identity.uid)
        recovered = False
        try:
            try:
                draft = await self._store.get_draft_by_owner_email(identity.email)
            except Exception as e:
                logger.warning(f"Could not load draft for {identity.email}: {e}")
                self.load_error = "We couldn't load your saved application. You can keep editing."
                baseline = merge_identity({}, profile)
                self._load_baseline = (baseline, self._state.active_section)
                form_data = baseline
                local = self._read_local_copy(pending_key)
                if local is not None:
                    logger.info(f"Recovered local copy {pending_key} while the stored draft is unavailable")
                    form_data = merge_identity(local.form_over(baseline), profile)
                    recovered = True
                self._state.replace_form_data(form_data)
                self._state.adopt_draft_id(make_temp_draft_id(identity.uid, self._clock()))
                return HydrationResult(
                    success=False,
                    draft_id=self._state.draft_id,
                    form_data=form_data,
                    recovered_from_fallback=recovered,
                    error=self.load_error,
                )

            self.load_error = None
            if draft is None:
                draft_id = make_temp_draft_id(identity.uid, self._clock())
                form_data, section, documents = {}, FormSection.PERSONAL, DocumentSlots()
                local = self._read_local_copy(pending_key)
                if local is not None:
                    logger.info(f"Recovered local copy {pending_key} saved before the draft existed")
                    form_data, section = local.form_over({}), local.snapshot.active_section
                    recovered = True
            else:
                self._drafts[identity.email.strip().lower()] = draft
                draft_id = draft.id
                form_data, section, documents = dict(draft.form_data), draft.active_section, draft.documents
                local = self._newest_local_copy(draft, pending_key)
                if local is not None:
                    logger.info(f"Recovered newer local copy {local.key} of draft {draft.id}")
                    form_data, section = local.form_over(form_data), local.snapshot.active_section
                    recovered = True

            merged = merge_identity(form_data, profile)
            self._state.replace_form_data(merged)
            self._state.set_section(section)
            self._state.set_documents(documents)
            self._state.adopt_draft_id(draft_id)
            return HydrationResult(
                success=True,
                draft_id=draft_id,
                form_data=merged,
                draft=draft,
                recovered_from_fallback=recovered,
            )
        finally:
            self._state.is_loading = False
            if recovered:
                self.schedule_autosave()

    def _newest_local_copy(self, draft: Draft, pending_key: str) -> _LocalCopy | None:
        """
        Picks the newest local copy saved after the durable draft.

        A copy left under the pending key is folded into the draft's own key
        (or dropped when stale) so it is not recovered twice.
        """
        keyed = self._read_local_copy(draft.id)
        pending = self._read_local_copy(pending_key)
        newer = [
            copy for copy in (keyed, pending)
            if copy is not None and (draft.last_saved_at is None or copy.snapshot.saved_at > draft.last_saved_at)
        ]
        newest = max(newer, key=lambda copy: copy.snapshot.saved_at, default=None)
        if pending is not None:
            try:
                if newest is pending:
                    self._fallback.move(pending_key, draft.id)
                else:
                    self._fallback.delete(pending_key)
            except Exception as e:
                logger.warning(f"Could not fold local copy {pending_key} into draft {draft.id}: {e}")
        return newest

    def _read_local_copy(self, key: str) -> _LocalCopy | None:
        try:
            payload = self._fallback.read(key)
            if not payload:
                return None
            return _LocalCopy(
                key=key,
                snapshot=DraftSnapshot.from_dict(payload),
                baseline=payload.get("loadBaseline"),
            )
        except Exception as e:
            logger.warning(f"Ignoring unreadable local copy of draft {key}: {e}")
            return None
