"""Note storage (Obsidian vault or plain folder).

Paths are vault-relative with forward slashes, like Obsidian's own. Writes
create or overwrite; nothing here ever deletes a note.
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Union

log = logging.getLogger(__name__)


class VaultPathError(ValueError):
    """Raised for a path that would land outside the vault."""


def normalize_path(path: str) -> str:
    """Collapse slashes and surrounding whitespace: ``" a//b/ "`` -> ``"a/b"``."""
    parts = [p.strip() for p in path.replace("\\", "/").split("/")]
    return "/".join(p for p in parts if p and p != ".")


class Vault:
    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(normalize_path(path))
        if ".." in rel.parts:
            raise VaultPathError(f"Path escapes the vault: {path!r}")
        return self.root.joinpath(*rel.parts)

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def ensure_folder(self, path: str) -> Path:
        """Create a folder (and parents) if it doesn't exist yet."""
        folder = self._resolve(path)
        if not folder.exists():
            folder.mkdir(parents=True)
            log.info("Created folder: %s", folder)
        return folder

    def write(self, path: str, content: str) -> Path:
        target = self._resolve(path)
        target.write_text(content, encoding="utf-8")
        log.debug("Wrote %s (%d chars)", target, len(content))
        return target
