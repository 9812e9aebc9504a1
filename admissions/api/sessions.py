"""
Session registry: one ApplicationSession per signed-in user.

Adapters are built once from Settings and shared by every session; each
session owns its form state, timers and background upload.
"""

import logging

from admissions.config.settings import Settings, get_settings
from admissions.core.interfaces.blob_store import IBlobStore
from admissions.core.interfaces.compression_service import ICompressionService
from admissions.core.interfaces.local_fallback_store import ILocalFallbackStore
from admissions.core.interfaces.record_store import IRecordStore
from admissions.core.use_cases.application_session import ApplicationSession, SessionStart
from admissions.infrastructure.identity.static_identity import StaticIdentityProvider

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-process sessions keyed by user id."""

    def __init__(
        self,
        settings: Settings,
        record_store: IRecordStore,
        blob_store: IBlobStore,
        fallback_store: ILocalFallbackStore,
        compression_service: ICompressionService | None = None,
    ):
        self.settings = settings
        self.record_store = record_store
        self.blob_store = blob_store
        self.fallback_store = fallback_store
        self.compression_service = compression_service
        self._sessions: dict[str, ApplicationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, uid: str) -> ApplicationSession | None:
        return self._sessions.get(uid)

    async def start(self, email: str, uid: str, profile: dict | None = None) -> tuple[ApplicationSession, SessionStart]:
        """(Re)opens the session of ``uid``; a previous session is closed first."""
        previous = self._sessions.pop(uid, None)
        if previous is not None:
            await previous.close()

        s = self.settings
        session = ApplicationSession(
            record_store=self.record_store,
            blob_store=self.blob_store,
            fallback_store=self.fallback_store,
            identity_provider=StaticIdentityProvider(email, uid, profile),
            compression_service=self.compression_service,
            quiet_period=s.autosave_quiet_period_seconds,
            multi_slot_cap=s.academic_documents_cap,
            max_document_size_mb=s.max_document_size_mb,
            max_photo_size_mb=s.max_photo_size_mb,
            tick_interval=s.progress_tick_seconds,
            tick_increment=s.progress_tick_increment,
            simulated_ceiling=s.progress_simulated_ceiling,
            settle_delay=s.finalize_settle_seconds,
            savings_notice_ratio=s.compression_savings_notice_ratio,
        )
        started = await session.start()
        self._sessions[uid] = session
        logger.info(f"Session started for {uid} (draft={session.state.draft_id}, view_mode={started.view_mode})")
        return session, started

    async def close(self, uid: str) -> bool:
        session = self._sessions.pop(uid, None)
        if session is None:
            return False
        await session.close()
        return True

    async def close_all(self) -> None:
        for uid in list(self._sessions):
            await self.close(uid)


# ── Adapter factories ──
def build_record_store(settings: Settings) -> IRecordStore:
    from admissions.infrastructure.db.database import create_db_engine, create_session_factory, init_db
    from admissions.infrastructure.db.repository import SqlRecordStore

    engine = create_db_engine(settings.database_url)
    init_db(engine)
    return SqlRecordStore(create_session_factory(engine))


def build_blob_store(settings: Settings) -> IBlobStore:
    if settings.blob_backend == "s3":
        from admissions.infrastructure.storage.s3_blob_store import S3BlobStore
        return S3BlobStore(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url or None,
            access_key=settings.s3_access_key or None,
            secret_key=settings.s3_secret_key or None,
            region=settings.s3_region,
        )
    from admissions.infrastructure.storage.local_blob_store import LocalBlobStore
    return LocalBlobStore(settings.blob_local_root, settings.blob_public_base_url)


def build_fallback_store(settings: Settings) -> ILocalFallbackStore:
    from admissions.infrastructure.storage.json_fallback_store import JsonFileFallbackStore
    return JsonFileFallbackStore(settings.fallback_dir)


def build_compressor(settings: Settings) -> ICompressionService | None:
    if not settings.compression_enabled:
        return None
    from admissions.infrastructure.compression.opencv_compressor import OpenCVCompressor
    return OpenCVCompressor(
        large_threshold_mb=settings.compression_large_threshold_mb,
        medium_threshold_mb=settings.compression_medium_threshold_mb,
        max_dimension_large=settings.compression_max_dimension_large,
        max_dimension_medium=settings.compression_max_dimension_medium,
        max_width=settings.compression_max_width,
        max_height=settings.compression_max_height,
        quality_large=settings.compression_quality_large,
        quality_medium=settings.compression_quality_medium,
        quality_default=settings.compression_quality_default,
    )


# Lazy singleton
_registry: SessionRegistry | None = None


def get_registry() -> SessionRegistry:
    """Factory: build the registry with concrete adapters."""
    global _registry
    if _registry is None:
        settings = get_settings()
        _registry = SessionRegistry(
            settings=settings,
            record_store=build_record_store(settings),
            blob_store=build_blob_store(settings),
            fallback_store=build_fallback_store(settings),
            compression_service=build_compressor(settings),
        )
    return _registry


async def shutdown_registry() -> None:
    global _registry
    if _registry is not None:
        await _registry.close_all()
        _registry = None
