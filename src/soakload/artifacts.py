"""Contract class artifacts read from disk.

The document is treated as opaque JSON. Its fingerprint is SHA-512Half of the
canonical (sorted, compact) encoding, the same hash family the ledger uses for ids.
"""
import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from soakload.errors import ArtifactError


def _sha512half(b: bytes) -> bytes:
    return hashlib.sha512(b).digest()[:32]


@dataclass(frozen=True, slots=True)
class ClassArtifact:
    name: str
    path: Path | None
    document: dict[str, Any]
    class_hash: str

    @classmethod
    def from_document(cls, name: str, document: dict[str, Any], path: Path | None = None) -> "ClassArtifact":
        canonical = json.dumps(document, sort_keys=True, separators=(",", ":")).encode()
        return cls(name=name, path=path, document=document, class_hash=_sha512half(canonical).hex().upper())


def load_artifact(path: str | Path) -> ClassArtifact:
    path = Path(path)
    try:
        raw = path.read_text()
    except OSError as e:
        raise ArtifactError(path, f"unreadable: {e.strerror or e}") from e
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ArtifactError(path, f"malformed JSON at line {e.lineno}") from e
    if not isinstance(document, dict) or not document:
        raise ArtifactError(path, "expected a non-empty JSON object")
    return ClassArtifact.from_document(path.stem, document, path)
