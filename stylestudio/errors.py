# stylestudio/errors.py
from typing import Optional


class StudioError(Exception):
    """Base class for every failure raised by the studio."""


class MissingCredentials(StudioError, RuntimeError):
    pass


class InvalidImageFormat(StudioError, ValueError):
    pass


class TransientServerError(StudioError):
    """The model service reported an internal fault; safe to retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ModelRequestError(StudioError):
    """Any other non-2xx answer from the model service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NoImageReturned(StudioError):
    """The model answered with text (usually a safety refusal) instead of an image."""

    def __init__(self, text: Optional[str] = None):
        self.text = text
        shown = text or "No text response received."
        super().__init__(f'The AI model responded with text instead of an image: "{shown}"')


class GenerationFailed(StudioError):
    pass


class RemixFailed(StudioError):
    pass


class AlbumIncomplete(StudioError):
    pass
