"""Exceptions raised while building a call flow diagram.

Only ``VoiceAppNotFound`` and ``MalformedFragment`` ever leave a render; the
other errors are handled where they occur and turned into diagram nodes.
"""

from typing import Optional


class CallFlowError(Exception):
    """Base class for call flow rendering errors."""


class VoiceAppNotFound(CallFlowError):
    """The requested phone number or voice app id matches nothing."""

    def __init__(self, message: str, phone_number: Optional[str] = None):
        super().__init__(message)
        self.phone_number = phone_number


class AmbiguousApplication(CallFlowError):
    """An application endpoint is neither a known auto attendant nor call queue."""

    def __init__(self, resource_account_id: str):
        super().__init__(
            f"Application endpoint {resource_account_id} does not belong to any "
            "auto attendant or call queue"
        )
        self.resource_account_id = resource_account_id


class CycleDetected(CallFlowError):
    """A nested expansion would revisit a voice app on the current path."""

    def __init__(self, voice_app_id: str, path: tuple):
        super().__init__(
            f"Voice app {voice_app_id} is already on the expansion path {list(path)}"
        )
        self.voice_app_id = voice_app_id
        self.path = path


class MalformedFragment(CallFlowError):
    """Diagram fragments violate a structural invariant."""


__all__ = [
    "CallFlowError",
    "VoiceAppNotFound",
    "AmbiguousApplication",
    "CycleDetected",
    "MalformedFragment",
]
