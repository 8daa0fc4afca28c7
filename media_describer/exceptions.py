"""
Custom exception hierarchy for the media describer.

Not-found conditions are never raised at the read surface; they come back
as None. These types cover what a caller may need to act on.
"""


class MediaDescriberError(Exception):
    """Base exception for all media describer errors."""
    pass


class MalformedFormatError(MediaDescriberError):
    """Raised when a PNG/JPEG byte stream lacks its signature or structure."""
    pass


class PersistenceError(MediaDescriberError):
    """Raised when a sidecar description file cannot be written."""
    pass


class MirrorWriteError(MediaDescriberError):
    """Raised when the embedded copy of a description cannot be written."""
    pass


class FileOperationError(MediaDescriberError):
    """Raised when rename/move of a media file fails."""
    pass


class RecognitionError(MediaDescriberError):
    """Raised by a recognition backend that could not describe a file."""
    pass
