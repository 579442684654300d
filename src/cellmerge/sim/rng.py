from __future__ import annotations

import hashlib

_UNIT_BITS = 53


def derive_stream_seed(master_seed: int, stream_name: str) -> int:
    """Derive a deterministic child seed from (master_seed, stream_name)."""
    digest = hashlib.sha256(f"{master_seed}:{stream_name}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)


def luck(seed_text: str) -> float:
    """Stable uniform draw in [0, 1) for an arbitrary string."""
    digest = hashlib.sha256(seed_text.encode("utf-8")).digest()
    bits = int.from_bytes(digest[:8], byteorder="big", signed=False) >> (64 - _UNIT_BITS)
    return bits / float(1 << _UNIT_BITS)
