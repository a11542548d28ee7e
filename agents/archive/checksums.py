"""
Object-store checksum set.

The remote store requires exactly 7 SHA-256 digests at object creation:

    index 0     SHA-256 of the full payload
    index 1-4   SHA-256 of each of 4 data shards
    index 5-6   SHA-256 of each of 2 parity shards

Data shards are ceil(len / 4) bytes, zero-padded. Parity shards are the XOR
of the data shards; parity p > 0 additionally has its first byte XORed with
p. This is the checksum pre-image only; the store derives the real
Reed-Solomon coding on its side. Payloads are treated as a single segment.
"""

from __future__ import annotations

import math

from core.crypto import sha256
from core.schemas.oracle import EXPECTED_CHECKSUM_COUNT

DATA_SHARDS = 4
PARITY_SHARDS = 2
# Store segment size; larger payloads would need per-segment hashing
SEGMENT_SIZE = 16 * 1024 * 1024


def split_data_shards(payload: bytes) -> list[bytes]:
    """Split into DATA_SHARDS equal, zero-padded shards."""
    shard_size = math.ceil(len(payload) / DATA_SHARDS)
    shards = []
    for i in range(DATA_SHARDS):
        chunk = payload[i * shard_size:(i + 1) * shard_size]
        shards.append(chunk + b"\x00" * (shard_size - len(chunk)))
    return shards


def parity_shards(data_shards: list[bytes]) -> list[bytes]:
    shard_size = len(data_shards[0]) if data_shards else 0
    base = bytearray(shard_size)
    for shard in data_shards:
        for i, b in enumerate(shard):
            base[i] ^= b

    shards = []
    for p in range(PARITY_SHARDS):
        parity = bytearray(base)
        if p > 0 and shard_size:
            parity[0] ^= p & 0xFF
        shards.append(bytes(parity))
    return shards


def compute_checksums(payload: bytes) -> list[bytes]:
    """
    Compute the 7-digest checksum set for a payload.

    Raises:
        ValueError: payload exceeds one segment
    """
    if len(payload) > SEGMENT_SIZE:
        raise ValueError(
            f"payload of {len(payload)} bytes exceeds one {SEGMENT_SIZE}-byte segment"
        )
    data = split_data_shards(payload)
    checksums = [sha256(payload)]
    checksums.extend(sha256(s) for s in data)
    checksums.extend(sha256(s) for s in parity_shards(data))
    if len(checksums) != EXPECTED_CHECKSUM_COUNT:
        raise ValueError(
            f"checksum set has {len(checksums)} entries, store expects {EXPECTED_CHECKSUM_COUNT}"
        )
    return checksums
