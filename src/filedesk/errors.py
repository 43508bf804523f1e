"""Error taxonomy for the upload workflow."""

import uuid


class FileDeskError(Exception):
    code = "filedesk_error"


class TransientCheckError(FileDeskError):
    """Duplicate check failed; the files involved stay undecided."""

    code = "transient_check_error"


class DuplicateName(FileDeskError):
    code = "duplicate_name"

    def __init__(self, name: str, existing_file_id: uuid.UUID | None = None):
        super().__init__(
            f"A file named '{name}' already exists. Please rename or overwrite."
        )
        self.name = name
        self.existing_file_id = existing_file_id


class MissingTarget(FileDeskError):
    code = "missing_target"


class StorageWriteError(FileDeskError):
    code = "storage_write_error"


class MetadataWriteError(FileDeskError):
    code = "metadata_write_error"


class IndexBridgeError(FileDeskError):
    code = "index_bridge_error"


class FileNotFound(FileDeskError):
    code = "file_not_found"


class UnknownFile(FileDeskError):
    """No selected file with that id in the upload session."""

    code = "unknown_file"


class InvalidTransition(FileDeskError):
    code = "invalid_transition"


class SessionNotReady(FileDeskError):
    code = "session_not_ready"


class SessionClosed(FileDeskError):
    code = "session_closed"
