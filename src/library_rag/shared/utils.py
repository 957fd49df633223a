"""
Utilities Module - Common helper functions.
==========================================

Provides utility functions for:
- Hashing (SHA256 for stable identifiers)
- ID generation (documents and fragments)
- File I/O (JSON)
- Directory management
- Text helpers
"""

import hashlib
import json
import re
from pathlib import Path
from typing import Any, Iterable

from library_rag.shared.logging import get_logger

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Hashing Functions
# ─────────────────────────────────────────────────────────────────────────────


def compute_hash(text: str, algorithm: str = "sha256") -> str:
    """
    Compute hash of text content.

    Args:
        text: Text to hash
        algorithm: Hash algorithm (default: sha256)

    Returns:
        Hexadecimal hash string

    Example:
        >>> compute_hash("hello world")
        'b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9'
    """
    hasher = hashlib.new(algorithm)
    hasher.update(text.encode("utf-8"))
    return hasher.hexdigest()


# ─────────────────────────────────────────────────────────────────────────────
# ID Generation
# ─────────────────────────────────────────────────────────────────────────────


def normalize_name(name: str) -> str:
    """
    Normalize a file name for use in IDs.

    Word characters (including CJK) are kept; everything else collapses
    into single underscores.

    Example:
        >>> normalize_name("MySQL 手册.txt")
        'mysql_手册_txt'
    """
    normalized = re.sub(r"[^\w]+", "_", name.strip().lower())
    return normalized.strip("_") or "doc"


def generate_document_id(filename: str, text: str) -> str:
    """
    Generate a stable document ID.

    Format: {normalized_name}_{hash_prefix}

    The same file content under the same name always maps to the same ID,
    so re-ingesting a document overwrites its fragments instead of
    duplicating them.
    """
    return f"{normalize_name(filename)}_{compute_hash(text)[:12]}"


def generate_fragment_id(document_id: str, chunk_index: int) -> str:
    """
    Generate a stable fragment ID.

    Example:
        >>> generate_fragment_id("mysql_txt_ab12", 3)
        'mysql_txt_ab12_3'
    """
    return f"{document_id}_{chunk_index}"


# ─────────────────────────────────────────────────────────────────────────────
# Directory Management
# ─────────────────────────────────────────────────────────────────────────────


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Returns:
        The path (for chaining)
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_parent_directory(file_path: Path) -> Path:
    """Ensure the parent directory of a file exists."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    return file_path


# ─────────────────────────────────────────────────────────────────────────────
# JSON File I/O
# ─────────────────────────────────────────────────────────────────────────────


def load_json(file_path: Path) -> Any:
    """
    Load data from a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    with open(Path(file_path), "r", encoding="utf-8") as f:
        return json.load(f)


def save_json(file_path: Path, data: Any, indent: int = 2) -> None:
    """Save data to a JSON file, creating parent directories."""
    file_path = ensure_parent_directory(Path(file_path))

    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False, default=str)

    logger.debug(f"Saved JSON to {file_path}")


# ─────────────────────────────────────────────────────────────────────────────
# Text Utilities
# ─────────────────────────────────────────────────────────────────────────────


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """Truncate text to a maximum length, for log previews."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix


def dedupe_preserving_order(items: Iterable[str]) -> list[str]:
    """Drop repeated items, keeping the first occurrence of each."""
    seen: set[str] = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result
