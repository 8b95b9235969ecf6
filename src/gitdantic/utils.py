from __future__ import annotations

import hashlib


def normalize_prefix(prefix: str | None) -> str:
    """Strip leading slashes so the prefix joins cleanly onto the contents URL."""
    if not prefix:
        return ""
    return prefix.lstrip("/")


def collection_path(prefix: str, name: str, extension: str) -> str:
    """Derive the repository path backing collection ``name``."""
    return f"{prefix}{name}{extension}"


def blob_sha(content: bytes) -> str:
    """Compute the git blob object id for ``content``."""
    header = f"blob {len(content)}\0".encode("ascii")
    return hashlib.sha1(header + content).hexdigest()
