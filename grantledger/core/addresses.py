from __future__ import annotations

from typing import Iterable, List

from grantledger.core.errors import ParameterError


def normalize_address(raw: str) -> str:
    # addresses compare case-insensitively
    if raw is None:
        raise ParameterError("Address is required.")
    addr = str(raw).strip().lower()
    if not addr:
        raise ParameterError("Address is required.")
    return addr


def normalize_addresses(raw: Iterable[str]) -> List[str]:
    return [normalize_address(a) for a in raw]
