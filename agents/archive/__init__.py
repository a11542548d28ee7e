"""
Proof Archive

Local-first persistence of proof records with a best-effort remote mirror
and the store's 7-digest checksum contract.
"""

from .archive import ProofArchive, object_name_for, pending_label
from .checksums import compute_checksums, parity_shards, split_data_shards
from .store import (
    FallbackObjectStore,
    MinioObjectStore,
    ObjectStore,
    StorageProvider,
    build_object_store,
    select_primary_provider,
)

__all__ = [
    "FallbackObjectStore",
    "MinioObjectStore",
    "ObjectStore",
    "ProofArchive",
    "StorageProvider",
    "build_object_store",
    "compute_checksums",
    "object_name_for",
    "parity_shards",
    "pending_label",
    "select_primary_provider",
    "split_data_shards",
]
