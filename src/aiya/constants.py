"""Shared display helpers for aiya."""

# Preview lengths used by audit records and failure messages
CONTENT_PREVIEW_LENGTH = 200
OUTPUT_SNIPPET_LENGTH = 500


def truncate(text: str, max_length: int = CONTENT_PREVIEW_LENGTH) -> str:
    """Truncate text with ellipsis if it exceeds max_length."""
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def format_size(size_bytes: int) -> str:
    """Format byte count as human-readable string (B, KB, MB)."""
    if size_bytes < 1024:
        return f"{size_bytes}B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f}KB"
    return f"{size_bytes / (1024 * 1024):.1f}MB"
