"""Per-file locking and version-checked writes."""

from scriptwell.coherence.manager import FileCoherenceManager, FileLockEntry

__all__ = ["FileCoherenceManager", "FileLockEntry"]
