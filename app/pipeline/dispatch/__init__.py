"""Session dispatch: archive the session directory and upload it."""

from .archiver import SessionArchiver
from .progress import CompositeProgress
from .uploader import ArchiveUploader, UploadResult
from .retry import RetryPolicy, call_with_retry
from .resend import resend_session

__all__ = [
    "ArchiveUploader",
    "CompositeProgress",
    "RetryPolicy",
    "SessionArchiver",
    "UploadResult",
    "call_with_retry",
    "resend_session",
]
