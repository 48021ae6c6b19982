"""Small concurrency helpers."""

from sitewatch.utils.locks import RWLock

__all__ = ["RWLock"]
