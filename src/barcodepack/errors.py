from __future__ import annotations


class BarcodePackError(Exception):
    pass


class InvalidInput(BarcodePackError, ValueError):
    pass


class ResourceError(BarcodePackError, RuntimeError):
    pass


class ArchiveError(ResourceError):
    pass


class ChunkTimeout(BarcodePackError):
    pass


class WatchdogExpired(BarcodePackError):
    pass


class FinalizeTimeout(BarcodePackError):
    pass
