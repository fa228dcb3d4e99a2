"""Deduplication engine.

Architecture:
    scan_source -> PipelineCoordinator -> Manifest.persist -> GarbageCollector

Components:
- **HashWorkerPool**: bounded thread pool hashing chunk buffers
- **PipelineCoordinator**: chunks files, commits hashes in index order
- **GarbageCollector**: deletes chunks the persisted manifest no longer uses
- **reassemble / verify_store**: consumers of the manifest format
"""

from dedupsync.engine.gc import GarbageCollector, GCResult
from dedupsync.engine.pipeline import FileResult, PipelineCoordinator, RunSummary
from dedupsync.engine.pool import HashTask, HashWorkerPool, PoolState, ResultSlot
from dedupsync.engine.restore import RestoreError, VerifyReport, reassemble, verify_store
from dedupsync.engine.scanner import IgnorePatterns, SourceScan, scan_source
from dedupsync.engine.sync import run_sync

__all__ = [
    # Pool
    "HashTask",
    "HashWorkerPool",
    "PoolState",
    "ResultSlot",
    # Pipeline
    "FileResult",
    "PipelineCoordinator",
    "RunSummary",
    # GC
    "GCResult",
    "GarbageCollector",
    # Restore
    "RestoreError",
    "VerifyReport",
    "reassemble",
    "verify_store",
    # Scanning
    "IgnorePatterns",
    "SourceScan",
    "scan_source",
    "run_sync",
]
