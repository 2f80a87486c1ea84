"""Filesystem artifact store served under the app's static mount."""

from dataclasses import dataclass
from pathlib import Path

from leaderbot.services.generation import ArtifactStore


@dataclass
class LocalArtifactStore(ArtifactStore):
    """Writes generated images below a public directory."""

    root: Path

    def save(self, path: str, data: bytes, content_type: str) -> int:
        """Write bytes to root/path and return the number written."""
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise ValueError(f"Artifact path escapes the public directory: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        return target.write_bytes(data)
