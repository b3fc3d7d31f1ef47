from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

# prev_hash of the first event in the stream
GENESIS_HASH = "0" * 64


def canonical_dumps(obj: Dict[str, Any]) -> str:
    # sorted keys, no whitespace; enums and other scalars fall back to str()
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def chain_hash(prev_hash: str, body: Dict[str, Any]) -> str:
    """
    entry_hash = SHA256(prev_hash + canonical(body))
    """
    return sha256_hex(prev_hash + canonical_dumps(body))


def links_to(prev_hash: str, body: Dict[str, Any], entry_hash: str) -> bool:
    return chain_hash(prev_hash, body) == entry_hash
