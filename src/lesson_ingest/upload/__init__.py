"""Upload transport and sequential queue."""

from .queue import UploadQueue
from .transport import UploadReceipt, UploadTransport
from .uploader import ReferenceUploader

__all__ = ["ReferenceUploader", "UploadQueue", "UploadReceipt", "UploadTransport"]
