"""
File-name checks for identifiers that end up in local storage paths.
"""


def is_safe_segment(value: str) -> bool:
    """True if value can be used as a single path component."""
    return bool(value) and value not in (".", "..") and not any(
        sep in value for sep in ("/", "\\", "\x00")
    )


def safe_segment(value: str, kind: str) -> str:
    if not is_safe_segment(value):
        raise ValueError(f"Invalid {kind} for local storage: {value!r}")
    return value
