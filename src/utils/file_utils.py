"""
File and directory utilities.
"""

from pathlib import Path
from uuid import uuid4


def ensure_directory_exists(path: str | Path) -> Path:
    """
    Create the directory (and any missing parents) if it does not exist.

    Args:
        path: Directory path as string or Path.

    Returns:
        Resolved Path of the directory.
    """
    p = Path(path).resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


def save_screenshot(upload_dir: str | Path, image_bytes: bytes) -> str:
    """
    Store a problem screenshot under a fresh ``<uuid>.png`` name.

    Args:
        upload_dir: Directory that is served under ``/uploads``.
        image_bytes: Raw image bytes.

    Returns:
        Public URL path of the stored file, e.g. ``/uploads/<uuid>.png``.

    Raises:
        ValueError: If *image_bytes* is empty.
    """
    if not image_bytes:
        raise ValueError("Empty screenshot cannot be saved.")
    target_dir = ensure_directory_exists(upload_dir)
    file_name = f"{uuid4()}.png"
    (target_dir / file_name).write_bytes(image_bytes)
    return f"/uploads/{file_name}"
