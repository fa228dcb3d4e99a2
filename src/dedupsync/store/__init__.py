"""Store module - Content-addressed chunk store and manifest."""

from dedupsync.store.manifest import ChunkRef, FileEntry, Manifest, ManifestDocument
from dedupsync.store.storage import ChunkStore, LocalFSChunkStore, create_store

__all__ = [
    "ChunkRef",
    "ChunkStore",
    "FileEntry",
    "LocalFSChunkStore",
    "Manifest",
    "ManifestDocument",
    "create_store",
]
