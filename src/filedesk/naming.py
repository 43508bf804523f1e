"""Storage-safe filename normalization.

The client-side pre-check and the commit-time check must compute the same
candidate name, so everything here is pure and deterministic.
"""

import re

MAX_FILENAME_LENGTH = 100
DEFAULT_DISPLAY_NAME = "untitled"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9.]")


def _sanitize(value: str) -> str:
    return _UNSAFE_CHARS.sub("_", value).lower()


def split_extension(filename: str) -> str:
    """Return the text after the last dot, or '' when there is none."""
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1]


def default_display_name(filename: str) -> str:
    """Filename minus its extension."""
    if "." not in filename:
        return filename
    return filename.rsplit(".", 1)[0]


def fallback_display_name(name: str | None, original_filename: str) -> str:
    """Use the given name unless blank, then the file stem, then a literal default."""
    if name and name.strip():
        return name
    stem = default_display_name(original_filename)
    return stem if stem.strip() else DEFAULT_DISPLAY_NAME


def normalize_filename(display_name: str, extension: str) -> str:
    """Convert a display name plus the original extension into a storage name.

    Any dot the user typed into the display name is not trusted as an
    extension: the fragment after the last dot is dropped and the original
    extension is appended instead. The result never exceeds
    MAX_FILENAME_LENGTH characters and contains only ``[a-z0-9._]``.
    """
    extension = _sanitize(extension.rsplit(".", 1)[-1])[: MAX_FILENAME_LENGTH - 1]
    sanitized = _sanitize(display_name)

    if not extension:
        # No extension to anchor on, so no dot may survive
        return sanitized.replace(".", "_")[:MAX_FILENAME_LENGTH]

    dot = sanitized.rfind(".")
    base = sanitized if dot < 0 else sanitized[:dot]

    max_base_length = MAX_FILENAME_LENGTH - len(extension) - 1
    if len(base) > max_base_length:
        base = base[:max_base_length]
    return f"{base}.{extension}"


def candidate_name(display_name: str | None, original_filename: str) -> str:
    """Normalized name for a selected file, with blank-name fallback."""
    return normalize_filename(
        fallback_display_name(display_name, original_filename),
        split_extension(original_filename),
    )
