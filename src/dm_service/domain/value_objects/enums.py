from __future__ import annotations

from enum import StrEnum


class AttachmentCategory(StrEnum):
    IMAGE = "image"
    AUDIO = "audio"
    FILE = "file"

    @classmethod
    def from_mime_type(cls, mime_type: str) -> AttachmentCategory:
        major = mime_type.split("/", 1)[0]
        if major == "image":
            return cls.IMAGE
        if major == "audio":
            return cls.AUDIO
        return cls.FILE


class ComposerState(StrEnum):
    IDLE = "idle"
    COMPOSING_TEXT = "composing_text"
    REPLYING_TO = "replying_to"
    ATTACHING_FILE = "attaching_file"
    RECORDING = "recording"
    SENDING = "sending"


class RealtimeEventType(StrEnum):
    MESSAGE_INSERTED = "message.inserted"
    MESSAGE_UPDATED = "message.updated"


class SessionChangeKind(StrEnum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
