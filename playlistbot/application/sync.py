import logging
from enum import Enum
from typing import List

from playlistbot.application.guard import AccessGuard
from playlistbot.application.resolution import OwnerResolver
from playlistbot.application.snapshot import ContentSnapshotter, compute_delta
from playlistbot.crosscutting.logging import CorrelationContext, log_sync_result, set_stage
from playlistbot.domain.entities import ErrorKind, SyncRequest, SyncResult, TrackReference
from playlistbot.domain.errors import (
    ApplyFailure, GuardTimeout, InvalidReference, ResolutionFailure, SnapshotFailure, UpstreamError,
)
from playlistbot.domain.extraction import extract_track_ids, owner_key as derive_owner_key


logger = logging.getLogger(__name__)


class SyncStage(Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    RESOLVING = "resolving"
    SNAPSHOTTING = "snapshotting"
    DIFFING = "diffing"
    APPLYING = "applying"


_STAGE_ERROR_KINDS = {
    SyncStage.RESOLVING: ErrorKind.RESOLUTION_FAILURE,
    SyncStage.SNAPSHOTTING: ErrorKind.SNAPSHOT_FAILURE,
    SyncStage.DIFFING: ErrorKind.SNAPSHOT_FAILURE,
    SyncStage.APPLYING: ErrorKind.APPLY_FAILURE,
}


class SyncOrchestrator:
    """Synchronizes the tracks mentioned in one message into the owner's playlist.

    Each call is independent: the playlist is resolved and its contents are
    fetched afresh, and every catalog call runs inside a single guarded session.
    """

    def __init__(self, guard: AccessGuard):
        self.guard = guard

    def synchronize_chat(self, chat_id: int, text: str) -> SyncResult:
        """Synchronize a chat message into the playlist owned by that chat."""
        with CorrelationContext(chat_id=str(chat_id)):
            return self.synchronize(derive_owner_key(chat_id), text)

    def synchronize(self, owner_key: str, text: str) -> SyncResult:
        """Extract track references from text and append the new ones.

        Returns:
            SyncResult.added, SyncResult.no_new_items or SyncResult.error
        """
        with CorrelationContext(owner_key=owner_key, stage=SyncStage.EXTRACTING.value):
            candidates = extract_track_ids(text)
            if not candidates:
                logger.debug("No track references in message")
                return SyncResult.no_new_items(had_references=False)
            result = self.run(SyncRequest(owner_key=owner_key, candidates=candidates))
            log_sync_result(logger, owner_key, result)
            return result

    def run(self, request: SyncRequest) -> SyncResult:
        """Apply an already extracted request."""
        if not request.candidates:
            return SyncResult.no_new_items(had_references=False)

        try:
            references = [TrackReference.parse(candidate) for candidate in request.candidates]
        except InvalidReference as e:
            logger.warning(f"Rejected message for {request.owner_key}: {e}")
            return SyncResult.error(ErrorKind.INVALID_REFERENCE, "invalid track reference")

        try:
            with self.guard.session() as catalog:
                return self._apply(catalog, request.owner_key, references)
        except GuardTimeout as e:
            return SyncResult.error(ErrorKind.TIMEOUT, str(e))

    def _apply(self, catalog, owner_key: str, references: List[TrackReference]) -> SyncResult:
        stage = SyncStage.IDLE
        try:
            stage = SyncStage.RESOLVING
            set_stage(stage.value)
            playlist = OwnerResolver(catalog).resolve(owner_key)

            with CorrelationContext(playlist_id=playlist.id):
                stage = SyncStage.SNAPSHOTTING
                set_stage(stage.value)
                snapshot = ContentSnapshotter(catalog).snapshot(playlist)

                stage = SyncStage.DIFFING
                set_stage(stage.value)
                delta = compute_delta(references, snapshot)
                if not delta:
                    logger.info(f"All {len(references)} track(s) already in playlist {playlist.id}")
                    return SyncResult.no_new_items()

                stage = SyncStage.APPLYING
                set_stage(stage.value)
                try:
                    catalog.add_items_to_playlist(playlist.id, [reference.id for reference in delta])
                except ApplyFailure:
                    raise
                except UpstreamError as e:
                    raise ApplyFailure(str(e)) from e

                return SyncResult.added(len(delta), catalog.playlist_locator(playlist.id))

        except ResolutionFailure as e:
            return SyncResult.error(ErrorKind.RESOLUTION_FAILURE, str(e))
        except SnapshotFailure as e:
            return SyncResult.error(ErrorKind.SNAPSHOT_FAILURE, str(e))
        except ApplyFailure as e:
            return SyncResult.error(ErrorKind.APPLY_FAILURE, f"could not add tracks: {e}")
        except UpstreamError as e:
            return SyncResult.error(_STAGE_ERROR_KINDS.get(stage, ErrorKind.APPLY_FAILURE), str(e))
        except Exception as e:
            logger.exception(f"Unexpected error while {stage.value} for {owner_key}")
            return SyncResult.error(_STAGE_ERROR_KINDS.get(stage, ErrorKind.APPLY_FAILURE), f"unexpected error: {e}")
