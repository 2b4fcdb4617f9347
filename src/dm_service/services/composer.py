"""Per-thread draft state: text, reply target, one staged attachment, voice recording."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from dm_service.application.dto.message import SendMessageDTO
from dm_service.application.exceptions import (
    DataIntegrityError,
    RecordingError,
    ValidationError,
)
from dm_service.application.ports.recorder import AudioRecorder
from dm_service.domain.entities.conversation import ConversationKey
from dm_service.domain.entities.message import AttachmentSource, Message
from dm_service.domain.value_objects.enums import AttachmentCategory, ComposerState

logger = logging.getLogger(__name__)

SendCallable = Callable[[SendMessageDTO], Awaitable[Message]]
PreviewCallable = Callable[[AttachmentSource], Awaitable[bytes | None]]

RECORDING_TICK_SECONDS = 1.0


class ThreadComposer:
    """Drafting state machine for one open conversation.

    At most one send is in flight. A failed send leaves the draft untouched
    so the user can retry.
    """

    def __init__(
        self,
        key: ConversationKey,
        send: SendCallable,
        *,
        recorder: AudioRecorder | None = None,
        previewer: PreviewCallable | None = None,
        max_bytes: int | None = None,
    ) -> None:
        self._key = key
        self._send = send
        self._recorder = recorder
        self._previewer = previewer
        self._max_bytes = max_bytes

        self.text = ""
        self.reply_target: Message | None = None
        self.attachment: AttachmentSource | None = None
        self.preview: bytes | None = None
        self.elapsed_seconds = 0

        self._preview_task: asyncio.Task[None] | None = None
        self._ticker: asyncio.Task[None] | None = None
        self._recording = False
        self._sending = False

    @property
    def key(self) -> ConversationKey:
        return self._key

    @property
    def state(self) -> ComposerState:
        if self._sending:
            return ComposerState.SENDING
        if self._recording:
            return ComposerState.RECORDING
        if self.attachment is not None:
            return ComposerState.ATTACHING_FILE
        if self.reply_target is not None:
            return ComposerState.REPLYING_TO
        if self.text:
            return ComposerState.COMPOSING_TEXT
        return ComposerState.IDLE

    @property
    def previewing(self) -> bool:
        return self._preview_task is not None and not self._preview_task.done()

    @property
    def can_submit(self) -> bool:
        return (
            not self._sending
            and not self._recording
            and (bool(self.text.strip()) or self.attachment is not None)
        )

    # -- text / reply ---------------------------------------------------------

    def set_text(self, text: str) -> None:
        self.text = text

    def reply_to(self, message: Message) -> None:
        """Set the single reply target, replacing any previous one."""
        if message.is_placeholder:
            raise ValidationError("Cannot reply to a placeholder message")
        if not self._key.contains(message):
            raise DataIntegrityError(
                f"Message {message.id} does not belong to conversation {self._key}"
            )
        self.reply_target = message

    def cancel_reply(self) -> None:
        self.reply_target = None

    # -- attachments ----------------------------------------------------------

    def attach_file(self, source: AttachmentSource) -> None:
        """Stage ``source``, replacing any staged file. Images get a preview."""
        if self._recording:
            raise ValidationError("Stop the recording before attaching a file")
        if self._max_bytes is not None and source.size > self._max_bytes:
            raise ValidationError(
                f"{source.filename} is {source.size} bytes, limit is {self._max_bytes}"
            )
        self._cancel_preview()
        self.attachment = source
        self.preview = None
        if self._previewer is not None and _is_image(source):
            self._preview_task = asyncio.create_task(
                self._render_preview(source), name=f"dm-preview-{self._key}",
            )

    def clear_attachment(self) -> None:
        self._cancel_preview()
        self.attachment = None
        self.preview = None

    async def _render_preview(self, source: AttachmentSource) -> None:
        assert self._previewer is not None
        try:
            preview = await self._previewer(source)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Preview failed for %s", source.filename, exc_info=True)
            return
        if self.attachment is source:
            self.preview = preview

    def _cancel_preview(self) -> None:
        if self._preview_task is not None and not self._preview_task.done():
            self._preview_task.cancel()
        self._preview_task = None

    # -- voice recording ------------------------------------------------------

    async def start_recording(self) -> None:
        if self._recording:
            return
        if self._recorder is None:
            raise RecordingError("No microphone available")
        try:
            await self._recorder.start()
        except RecordingError:
            raise
        except Exception as exc:
            raise RecordingError(f"Could not start recording: {exc}") from exc
        self._recording = True
        self.elapsed_seconds = 0
        self._ticker = asyncio.create_task(self._tick(), name=f"dm-recording-{self._key}")

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(RECORDING_TICK_SECONDS)
            self.elapsed_seconds += 1

    async def _stop_ticker(self) -> None:
        if self._ticker is None:
            return
        self._ticker.cancel()
        try:
            await self._ticker
        except asyncio.CancelledError:
            pass
        self._ticker = None

    async def stop_recording(self) -> AttachmentSource:
        """End the recording and stage the audio like any other attachment."""
        if not self._recording or self._recorder is None:
            raise ValidationError("Not recording")
        await self._stop_ticker()
        self._recording = False
        try:
            audio = await self._recorder.stop()
        except RecordingError:
            raise
        except Exception as exc:
            raise RecordingError(f"Could not finish recording: {exc}") from exc
        self.attach_file(audio)
        return audio

    async def cancel_recording(self) -> None:
        if not self._recording or self._recorder is None:
            return
        await self._stop_ticker()
        self._recording = False
        self.elapsed_seconds = 0
        await self._recorder.cancel()

    # -- submit ---------------------------------------------------------------

    async def submit(self) -> Message | None:
        """Send the draft. Returns None if a send is already in flight."""
        if self._sending:
            return None
        if self._recording:
            raise ValidationError("Stop the recording before sending")
        if not self.text.strip() and self.attachment is None:
            raise ValidationError("Message must have content or an attachment")

        dto = SendMessageDTO(
            sender_id=self._key.viewer_id,
            receiver_id=self._key.other_id,
            content=self.text,
            reply_to_id=self.reply_target.id if self.reply_target else None,
            attachment=self.attachment,
        )
        self._sending = True
        try:
            message = await self._send(dto)
        finally:
            self._sending = False
        self.reset()
        return message

    def reset(self) -> None:
        self.text = ""
        self.reply_target = None
        self.elapsed_seconds = 0
        self.clear_attachment()

    async def close(self) -> None:
        self._cancel_preview()
        await self.cancel_recording()


def _is_image(source: AttachmentSource) -> bool:
    if source.mime_type:
        return AttachmentCategory.from_mime_type(source.mime_type) is AttachmentCategory.IMAGE
    return source.filename.lower().endswith((".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp"))
