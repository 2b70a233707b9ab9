"""Vault loader — markdown notes with YAML front matter → import documents.

Each note becomes an Actor, Item or JournalEntry document depending on its
front-matter ``type`` (default ``journal``). Note bodies are clipped and
HTML-escaped into a ``<pre>`` block.
"""

from __future__ import annotations

import html
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from foundry_gateway.core.exceptions import InvalidRequestError, MisconfiguredServerError

logger = logging.getLogger(__name__)

_FRONT_MATTER_DELIMITER = "---"


@dataclass
class Note:
    path: Path
    data: dict[str, Any]
    content: str


def split_front_matter(raw: str) -> tuple[dict[str, Any], str]:
    """Split ``---``-delimited YAML front matter from the note body."""
    lines = raw.splitlines(keepends=True)
    if not lines or lines[0].strip() != _FRONT_MATTER_DELIMITER:
        return {}, raw

    for index in range(1, len(lines)):
        if lines[index].strip() == _FRONT_MATTER_DELIMITER:
            header = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            try:
                data = yaml.safe_load(header) or {}
            except yaml.YAMLError as e:
                logger.warning("Ignoring malformed front matter: %s", e)
                return {}, body
            return (data if isinstance(data, dict) else {}), body

    return {}, raw


def walk_markdown_files(root: Path, max_files: int) -> list[Path]:
    """Depth-first list of ``*.md`` files, skipping dot-directories.

    Symlinks are not followed, so the walk never leaves ``root``.
    Directories that cannot be listed are skipped.
    """
    results: list[Path] = []
    stack = [root]
    while stack and len(results) < max_files:
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    if len(results) >= max_files:
                        break
                    if entry.is_dir(follow_symlinks=False):
                        if not entry.name.startswith("."):
                            stack.append(Path(entry.path))
                    elif entry.is_file(follow_symlinks=False) and entry.name.endswith(".md"):
                        results.append(Path(entry.path))
        except OSError as e:
            logger.warning("Skipping unreadable vault directory %s: %s", current, e)
    return results


def map_note_to_document(note: Note) -> dict[str, Any] | None:
    data = note.data
    note_type = str(data.get("type") or "journal").lower()
    name = data.get("title") or data.get("name") or note.path.stem
    pack = data.get("compendium") or data.get("pack")
    foundry_id = data.get("foundryId") or data.get("_id")

    if note_type in ("npc", "actor"):
        document = {
            "type": "Actor",
            "data": {
                "_id": foundry_id,
                "name": name,
                "type": "npc",
                "system": data.get("system") or {},
                "notes": {"value": note.content},
            },
        }
    elif note_type == "item":
        document = {
            "type": "Item",
            "data": {
                "_id": foundry_id,
                "name": name,
                "type": data.get("itemType") or "loot",
                "system": data.get("system") or {},
                "description": {"value": note.content},
            },
        }
    elif note_type in ("journal", "journalentry"):
        document = {
            "type": "JournalEntry",
            "data": {"_id": foundry_id, "name": name, "content": note.content},
        }
    else:
        return None

    if pack:
        document["pack"] = pack
    return document


class VaultLoader:
    def __init__(self, vault_path: str, max_files: int = 500, max_content_chars: int = 20_000):
        self.vault_path = vault_path
        self.max_files = max_files
        self.max_content_chars = max_content_chars

    def _root(self) -> Path:
        if not self.vault_path:
            raise MisconfiguredServerError("VAULT_PATH is required.")
        root = Path(self.vault_path).resolve()
        if not root.is_dir():
            raise MisconfiguredServerError("VAULT_PATH is not a directory.")
        return root

    def _resolve(self, root: Path, relative: str) -> Path:
        path = (root / relative).resolve()
        if path != root and root not in path.parents:
            raise InvalidRequestError(f"Path escapes the vault: {relative}")
        if not path.is_file():
            raise InvalidRequestError(f"Vault file not found: {relative}")
        return path

    def load_payload(self, paths: list[str] | None = None, filter_type: str | None = None) -> dict[str, Any]:
        """Build ``{"documents": [...]}`` from the given notes or the whole vault."""
        root = self._root()
        files = [self._resolve(root, p) for p in paths] if paths else walk_markdown_files(root, self.max_files)
        filter_type = filter_type.lower() if filter_type else None

        documents: list[dict[str, Any]] = []
        for path in files:
            if len(documents) >= self.max_files:
                break
            try:
                raw = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                name = path.relative_to(root).as_posix()
                if paths:
                    raise InvalidRequestError(f"Vault file is not readable UTF-8 text: {name}")
                logger.warning("Skipping unreadable vault note %s: %s", name, e)
                continue
            data, body = split_front_matter(raw)
            if filter_type and str(data.get("type") or "").lower() != filter_type:
                continue
            clipped = body[: self.max_content_chars]
            note = Note(path=path, data=data, content=f"<pre>{html.escape(clipped)}</pre>")
            document = map_note_to_document(note)
            if document:
                documents.append(document)

        logger.info("Loaded %d documents from %d vault files", len(documents), len(files))
        return {"documents": documents}
