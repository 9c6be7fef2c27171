"""ZIP archive helpers shared by the bundle codec and package import."""

import zipfile
from pathlib import Path


def safe_extract(archive: zipfile.ZipFile, destination: Path) -> None:
    """Extract every member of ``archive`` below ``destination``.

    Raises:
        ValueError: If a member path would resolve outside ``destination``.
            Nothing is extracted in that case.
        OSError: If writing fails.
    """
    root = destination.resolve()
    for member in archive.infolist():
        target = (root / member.filename).resolve()
        if not target.is_relative_to(root):
            msg = f"Archive member escapes extraction directory: {member.filename}"
            raise ValueError(msg)
    archive.extractall(root)
