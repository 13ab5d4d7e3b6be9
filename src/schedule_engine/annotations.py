"""
Note composition, @mentions, deletion and mention notifications for one task.

Two independent state machines live on a NoteComposer:

    add:     IDLE -> COMPOSING -> SUBMITTING -> IDLE
    delete:  IDLE -> CONFIRMING -> DELETING  -> IDLE

Only one note mutation per task may be in flight; both affordances are
disabled while SUBMITTING or DELETING.  Every write replaces the task's whole
``notes`` array.
"""

import asyncio
import base64
import io
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from datetime import timezone
from enum import Enum

from PIL import Image
from PIL import ImageOps
from PIL import UnidentifiedImageError

from schedule_engine.bus import RefreshBus
from schedule_engine.mentions import MentionQuery
from schedule_engine.mentions import commit_mention
from schedule_engine.mentions import detect_mention_query
from schedule_engine.mentions import extract_mentions
from schedule_engine.mentions import suggest_users
from schedule_engine.models import BusyError
from schedule_engine.models import EngineConfig
from schedule_engine.models import ImageProcessingError
from schedule_engine.models import MutationResult
from schedule_engine.models import NotAuthorizedError
from schedule_engine.models import Resource
from schedule_engine.models import Session
from schedule_engine.models import Task
from schedule_engine.models import TaskNote
from schedule_engine.models import User
from schedule_engine.models import ValidationError
from schedule_engine.mutations import run_mutation
from schedule_engine.permissions import can_delete_note
from schedule_engine.tasks import TaskIndex

logger = logging.getLogger(__name__)


class ComposerState(str, Enum):
    IDLE = "idle"
    COMPOSING = "composing"
    SUBMITTING = "submitting"


class DeleteState(str, Enum):
    IDLE = "idle"
    CONFIRMING = "confirming"
    DELETING = "deleting"


@dataclass
class ImageAttachment:
    url: str
    name: str
    mime_type: str
    size: int = 0
    preview_url: str | None = None


class InlineImageCompressor:
    """Default compressor: re-encodes the image and inlines it as a data URL.

    The decoded image is shrunk to fit within ``max_dimension`` pixels on its
    longer edge and saved as JPEG.  Anything Pillow cannot decode is rejected
    with ImageProcessingError.
    """

    def __init__(
        self,
        max_bytes: int = EngineConfig.max_image_bytes,
        max_dimension: int = EngineConfig.max_image_dimension,
        quality: int = EngineConfig.image_quality,
    ):
        self.max_bytes = max_bytes
        self.max_dimension = max_dimension
        self.quality = quality

    async def compress(self, data: bytes, name: str, mime_type: str) -> ImageAttachment:
        if not mime_type or not mime_type.startswith("image/"):
            raise ImageProcessingError(f"{name} is not an image ({mime_type or 'unknown type'})")
        if not data:
            raise ImageProcessingError(f"{name} is empty")
        if len(data) > self.max_bytes:
            raise ImageProcessingError(
                f"{name} is too large ({len(data)} bytes, limit {self.max_bytes})"
            )
        encoded = await asyncio.to_thread(self._reencode, data, name)
        return ImageAttachment(
            url=f"data:image/jpeg;base64,{base64.b64encode(encoded).decode('ascii')}",
            name=name,
            mime_type="image/jpeg",
            size=len(encoded),
        )

    def _reencode(self, data: bytes, name: str) -> bytes:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                img = ImageOps.exif_transpose(img)
                img.thumbnail((self.max_dimension, self.max_dimension))
                out = io.BytesIO()
                img.convert("RGB").save(out, format="JPEG", quality=self.quality, optimize=True)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise ImageProcessingError(f"{name} could not be processed: {e}") from e
        logger.debug(
            "Re-encoded %s: %d -> %d bytes (%dx%d)",
            name,
            len(data),
            out.tell(),
            img.width,
            img.height,
        )
        return out.getvalue()


def new_note_id() -> str:
    """Locally generated, time-ordered note id."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def notes_for_display(task: Task) -> list[TaskNote]:
    """Newest first; storage order stays insertion order."""
    return list(reversed(task.notes))


class NoteComposer:
    """Draft, submit and delete notes on a single open task."""

    def __init__(
        self,
        session: Session,
        task: Task,
        task_store,
        notifier=None,
        users: list[User] | None = None,
        index: TaskIndex | None = None,
        bus: RefreshBus | None = None,
        compressor=None,
        config: EngineConfig | None = None,
        release_preview: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session = session
        self.task = task
        self.task_store = task_store
        self.notifier = notifier
        self.users = list(users or [])
        self.index = index
        self.bus = bus
        self.config = config or EngineConfig()
        self.compressor = compressor or InlineImageCompressor(
            self.config.max_image_bytes,
            self.config.max_image_dimension,
            self.config.image_quality,
        )
        self._release_preview = release_preview
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.state = ComposerState.IDLE
        self.delete_state = DeleteState.IDLE
        self.text = ""
        self.cursor = 0
        self.mention: MentionQuery | None = None
        self.suggestions: list[User] = []
        self.attachment: ImageAttachment | None = None
        self.attachment_error: str | None = None
        self.pending_delete: TaskNote | None = None
        self.error: str | None = None
        self._attach_seq = 0
        self._dispatches: set[asyncio.Task] = set()

    # ------------------------------------------------------------------ #
    # Affordance gates                                                     #
    # ------------------------------------------------------------------ #

    @property
    def busy(self) -> bool:
        return self.state is ComposerState.SUBMITTING or self.delete_state is DeleteState.DELETING

    @property
    def can_submit(self) -> bool:
        return not self.busy and (bool(self.text.strip()) or self.attachment is not None)

    def can_delete(self, note: TaskNote) -> bool:
        return not self.busy and can_delete_note(self.session, note, self.config.admin_roles)

    # ------------------------------------------------------------------ #
    # Composing                                                            #
    # ------------------------------------------------------------------ #

    def _sync_compose_state(self):
        if self.state is ComposerState.SUBMITTING:
            return
        has_draft = bool(self.text) or self.attachment is not None
        self.state = ComposerState.COMPOSING if has_draft else ComposerState.IDLE

    def set_text(self, text: str, cursor: int | None = None):
        """Record a text change and refresh the mention suggestion list."""
        self.text = text
        self.cursor = len(text) if cursor is None else cursor
        self.mention = detect_mention_query(text, self.cursor)
        if self.mention is None:
            self.suggestions = []
        else:
            self.suggestions = suggest_users(
                self.mention.query, self.users, self.config.mention_limit
            )
        self._sync_compose_state()

    def close_suggestions(self):
        self.mention = None
        self.suggestions = []

    def select_suggestion(self, user: User) -> int:
        """Commit *user* into the active mention span; return the new cursor."""
        if self.mention is None:
            return self.cursor
        self.text, self.cursor = commit_mention(self.text, self.mention, user)
        self.close_suggestions()
        self._sync_compose_state()
        return self.cursor

    async def attach_image(self, data: bytes, name: str, mime_type: str) -> bool:
        """Compress and stage an image; a later attach supersedes an earlier one."""
        self._attach_seq += 1
        seq = self._attach_seq
        self.attachment_error = None
        try:
            attachment = await self.compressor.compress(data, name, mime_type)
        except Exception as e:
            if seq == self._attach_seq:
                self.clear_attachment()
                self.attachment_error = str(e)
                logger.warning(f"Image attachment rejected: {e}")
            return False
        if seq != self._attach_seq:
            logger.debug("Discarding superseded attachment %s", name)
            if attachment.preview_url and self._release_preview:
                self._release_preview(attachment.preview_url)
            return False
        self.clear_attachment()
        self.attachment = attachment
        self._sync_compose_state()
        return True

    def clear_attachment(self):
        if self.attachment and self.attachment.preview_url and self._release_preview:
            self._release_preview(self.attachment.preview_url)
        self.attachment = None
        self._sync_compose_state()

    # ------------------------------------------------------------------ #
    # Write-back                                                           #
    # ------------------------------------------------------------------ #

    async def _write_notes(self, notes: list[TaskNote]):
        await self.task_store.update_task(
            self.task.id, {"notes": [n.to_dict() for n in notes]}
        )

    def _commit_notes(self, notes: list[TaskNote]):
        self.task = self.task.copy(notes=notes)
        if self.index is not None:
            self.index.replace(self.task)
        if self.bus is not None:
            self.bus.publish(Resource.TASKS)

    # ------------------------------------------------------------------ #
    # Submit                                                               #
    # ------------------------------------------------------------------ #

    async def submit(self) -> MutationResult:
        """Append a note built from the current draft and commit it.

        Mention notifications are dispatched in the background once the commit
        succeeds, so the result does not wait on the notifier.  Await
        wait_for_notifications() to collect them.
        """
        if self.busy:
            return MutationResult.failure(str(BusyError("A note update is already in progress")))

        text = self.text.strip()
        attachment = self.attachment
        author = self.session

        def compute() -> list[TaskNote]:
            if not text and attachment is None:
                raise ValidationError("Write a note or attach an image", field="text")
            note = TaskNote(
                id=new_note_id(),
                user_id=author.user_id,
                user_name=author.user_name,
                text=text,
                created_at=self._clock().isoformat(),
                image_url=attachment.url if attachment else None,
                image_name=attachment.name if attachment else None,
                image_mime_type=attachment.mime_type if attachment else None,
            )
            return self.task.notes + [note]

        previous_state = self.state
        self.state = ComposerState.SUBMITTING
        self.error = None
        result = await run_mutation(compute, self._write_notes, self._commit_notes, "add note")

        if not result.ok:
            self.state = previous_state
            self.error = result.error
            return result

        self.state = ComposerState.IDLE
        self.text = ""
        self.cursor = 0
        self.close_suggestions()
        self.clear_attachment()
        result.value = result.value[-1]
        dispatch = asyncio.ensure_future(self._dispatch_mentions(text, result.value))
        self._dispatches.add(dispatch)
        dispatch.add_done_callback(self._dispatches.discard)
        return result

    async def wait_for_notifications(self):
        """Wait for every in-flight mention dispatch to finish."""
        if self._dispatches:
            await asyncio.gather(*self._dispatches)

    async def _dispatch_mentions(self, text: str, note: TaskNote):
        if self.notifier is None:
            return
        mentioned = extract_mentions(text, self.users, self.session.user_id)
        if not mentioned:
            return
        await asyncio.gather(*(self._notify(user_id, note) for user_id in mentioned))

    async def _notify(self, user_id: str, note: TaskNote):
        payload = {
            "userId": user_id,
            "type": "task",
            "title": "You were mentioned in a task",
            "message": f'{note.user_name} mentioned you on "{self.task.title}"',
            "link": f"/tasks?taskId={self.task.id}",
        }
        try:
            await self.notifier.create_notification(payload)
        except Exception as e:
            logger.warning(f"Failed to notify {user_id} of mention: {e}")

    # ------------------------------------------------------------------ #
    # Delete                                                               #
    # ------------------------------------------------------------------ #

    def request_delete(self, note: TaskNote) -> MutationResult:
        if self.busy:
            return MutationResult.failure(str(BusyError("A note update is already in progress")))
        if not can_delete_note(self.session, note, self.config.admin_roles):
            return MutationResult.failure(
                str(NotAuthorizedError("Only the author or an administrator can delete this note"))
            )
        self.pending_delete = note
        self.delete_state = DeleteState.CONFIRMING
        return MutationResult.success(note)

    def cancel_delete(self):
        if self.delete_state is DeleteState.CONFIRMING:
            self.pending_delete = None
            self.delete_state = DeleteState.IDLE

    async def confirm_delete(self) -> MutationResult:
        if self.delete_state is not DeleteState.CONFIRMING or self.pending_delete is None:
            return MutationResult.failure("No note deletion to confirm")
        if self.state is ComposerState.SUBMITTING:
            return MutationResult.failure(str(BusyError("A note update is already in progress")))

        target = self.pending_delete

        def compute() -> list[TaskNote]:
            return [n for n in self.task.notes if n.id != target.id]

        self.delete_state = DeleteState.DELETING
        self.error = None
        result = await run_mutation(compute, self._write_notes, self._commit_notes, "delete note")
        self.delete_state = DeleteState.IDLE
        self.pending_delete = None
        if not result.ok:
            self.error = result.error
        return result

    # ------------------------------------------------------------------ #
    # Teardown                                                             #
    # ------------------------------------------------------------------ #

    def close(self):
        """Reset all draft state when the task detail view closes."""
        self._attach_seq += 1
        self.clear_attachment()
        self.text = ""
        self.cursor = 0
        self.close_suggestions()
        self.attachment_error = None
        self.pending_delete = None
        self.error = None
        self.state = ComposerState.IDLE
        self.delete_state = DeleteState.IDLE
