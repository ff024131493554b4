class DocuSafeError(Exception):
    """Base for errors reported back to the user. Nothing is retried."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DocuSafeError):
    """Missing required field, duplicate email or category, bad input."""


class NotFoundError(DocuSafeError):
    status_code = 404


class PermissionDenied(DocuSafeError):
    status_code = 403


class RestoreError(DocuSafeError):
    """Backup payload is missing required sections; nothing was restored."""


class FileReadError(DocuSafeError):
    """Uploaded file could not be read; the upload was aborted."""
