import mimetypes
import os
from pathlib import Path
from typing import List, Optional

from .queue.models import FileItem

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}


def scan_input(
    input_path: str,
    recursive: bool = False,
    limit: Optional[int] = None,
    extensions: Optional[List[str]] = None,
) -> List[Path]:
    """
    Scan input path for image files.

    Args:
        input_path: File or directory path.
        recursive: Whether to search directories recursively.
        limit: Max number of files to return.
        extensions: Allowed extensions (e.g. ['jpg', 'png']). If None, uses defaults.

    Returns:
        List of Path objects, sorted alphabetically.
    """
    path = Path(input_path)
    if not path.exists():
        raise FileNotFoundError(f"Input path not found: {input_path}")

    allowed_exts = set(extensions) if extensions else IMAGE_EXTENSIONS
    allowed_exts = {(e if e.startswith(".") else f".{e}").lower() for e in allowed_exts}

    files = []
    if path.is_file():
        if path.suffix.lower() in allowed_exts:
            files.append(path)
    elif recursive:
        for root, _, filenames in os.walk(path):
            for name in filenames:
                p = Path(root) / name
                if p.suffix.lower() in allowed_exts:
                    files.append(p)
    else:
        files = [p for p in path.iterdir() if p.is_file() and p.suffix.lower() in allowed_exts]

    # Deterministic sort
    files.sort(key=lambda p: str(p))

    if limit:
        files = files[:limit]
    return files


def load_file_item(path: Path) -> FileItem:
    """Read a file from disk into a ``FileItem``, guessing its MIME type from the name."""
    data = path.read_bytes()
    mime_type, _ = mimetypes.guess_type(path.name)
    return FileItem(
        name=path.name,
        size=len(data),
        mime_type=mime_type or "application/octet-stream",
        data=data,
    )
