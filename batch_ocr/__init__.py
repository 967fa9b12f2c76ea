"""Batch OCR package: admission contrôlée, progression partagée et rapport final.

This package provides:
- Configuration loading utilities
- Typed structures for progress snapshots and configuration
- A progress store publishing ordered snapshots to an observer
- An admission controller (per-tick batch ceiling + quota window)
- Service wrappers around the Typhoon OCR API and result files
- An orchestrator running a whole batch concurrently
- A CLI to process files or folders
"""

__all__ = [
    "admission",
    "config",
    "errors",
    "ocr_service",
    "orchestrator",
    "progress",
    "report",
    "storage",
    "types",
    "writer",
]
