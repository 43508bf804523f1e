import enum


class FileStatus(str, enum.Enum):
    new = "new"
    checking = "checking"
    unique = "unique"
    duplicate = "duplicate"
    renaming_checking = "renaming_checking"


class FileAction(str, enum.Enum):
    upload = "upload"
    overwrite = "overwrite"
    skip = "skip"
    rename_initiate = "rename_initiate"


class ResolveAction(str, enum.Enum):
    skip = "skip"
    overwrite = "overwrite"
    rename = "rename"


class CommitStatus(str, enum.Enum):
    success = "success"
    error = "error"


class CommitOutcome(str, enum.Enum):
    all_succeeded = "all_succeeded"
    partial = "partial"
    all_failed = "all_failed"
    nothing_to_do = "nothing_to_do"
