"""
Input validation for vault-relative paths.

Every path crossing a store boundary is a POSIX path relative to the vault
root. These checks keep a hostile or corrupted listing from escaping it.
"""

from pathlib import PurePosixPath


def format_validation_error(field_name: str, reason: str) -> str:
    return f"{field_name} {reason}"


def validate_relative_path(path: str) -> tuple[bool, str]:
    """
    Validate a vault-relative file path.

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot be absolute
        - Cannot contain '..' segments
        - Cannot have empty path segments (e.g., 'a//b')
        - Cannot end with '/' (only files are tracked)
    """
    if not path or not path.strip():
        return (False, format_validation_error("Path", "cannot be empty"))

    if path.startswith("/") or "\\" in path:
        return (
            False,
            format_validation_error(
                "Path", f"must be relative and use '/' separators: {path}"
            ),
        )

    if path.endswith("/"):
        return (
            False,
            format_validation_error("Path", f"must name a file: {path}"),
        )

    if "//" in path:
        return (
            False,
            format_validation_error(
                "Path", f"cannot have empty path segments: {path}"
            ),
        )

    if ".." in PurePosixPath(path).parts:
        return (
            False,
            format_validation_error("Path", f"cannot contain '..': {path}"),
        )

    return (True, "")


def require_relative_path(path: str) -> str:
    """Return *path* unchanged, or raise ``ValueError`` if it is invalid."""
    valid, reason = validate_relative_path(path)
    if not valid:
        raise ValueError(reason)
    return path
