from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_dumps(data: Any) -> str:
    """Serialize JSON with sorted keys and compact separators."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def canonical_digest(data: Any) -> str:
    """SHA-256 of the canonical JSON encoding of ``data``."""
    return sha256_bytes(canonical_json_dumps(data).encode("utf-8"))
