"""Storage for uploaded file contents, keyed by document id."""
import logging
from dataclasses import dataclass
from typing import Optional

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from encryption import decrypt_bytes, encrypt_bytes
from errors import FileReadError, ValidationError
from models import db, FileBlob

logger = logging.getLogger(__name__)

INLINE_MIMETYPES = ("application/pdf", "image/")


@dataclass
class StoredFile:
    id: str
    filename: str
    mimetype: str
    data: bytes

    @property
    def previewable(self) -> bool:
        return self.mimetype.startswith(INLINE_MIMETYPES)


def allowed_file(filename: str, allowed_extensions) -> bool:
    if "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[1].lower()
    return ext in allowed_extensions


def read_upload(file: Optional[FileStorage], allowed_extensions) -> StoredFile:
    """Read an uploaded file into memory.

    Raises ``ValidationError`` when no file or a disallowed type was sent and
    ``FileReadError`` when the content cannot be read.
    """
    if file is None or not file.filename:
        raise ValidationError("Please choose a file to upload.")
    filename = secure_filename(file.filename)
    if not filename or not allowed_file(filename, allowed_extensions):
        raise ValidationError("This file type is not allowed.")
    try:
        data = file.read()
    except (OSError, ValueError) as e:
        logger.warning("Reading upload %r failed: %s", filename, e)
        raise FileReadError("There was an error processing your file. Please try again.")
    if not data:
        raise FileReadError("The uploaded file is empty.")
    return StoredFile(id="", filename=filename, mimetype=file.mimetype or "application/octet-stream", data=data)


class FileStore:
    def save(self, file_id: str, data: bytes, filename: str, mimetype: str) -> None:
        raise NotImplementedError

    def get(self, file_id: str) -> Optional[StoredFile]:
        raise NotImplementedError

    def delete(self, file_id: str) -> None:
        raise NotImplementedError


class MemoryFileStore(FileStore):
    def __init__(self):
        self._files: dict[str, StoredFile] = {}

    def save(self, file_id, data, filename, mimetype):
        self._files[file_id] = StoredFile(file_id, filename, mimetype, data)

    def get(self, file_id):
        return self._files.get(file_id)

    def delete(self, file_id):
        self._files.pop(file_id, None)


class SQLFileStore(FileStore):
    """Fernet-encrypted file rows. Needs an application context."""

    def save(self, file_id, data, filename, mimetype):
        blob = db.session.get(FileBlob, file_id)
        if blob is None:
            blob = FileBlob(id=file_id)
            db.session.add(blob)
        blob.filename = filename
        blob.mimetype = mimetype
        blob.size = len(data)
        blob.enc_content = encrypt_bytes(data)
        db.session.commit()

    def get(self, file_id):
        blob = db.session.get(FileBlob, file_id)
        if blob is None:
            return None
        return StoredFile(blob.id, blob.filename, blob.mimetype, decrypt_bytes(blob.enc_content))

    def delete(self, file_id):
        blob = db.session.get(FileBlob, file_id)
        if blob is not None:
            db.session.delete(blob)
            db.session.commit()
