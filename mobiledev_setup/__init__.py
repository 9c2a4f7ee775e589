"""Mobile development toolchain setup (Python-first, step-driven).

Core design goals:
- Idempotent steps, each guarded by an on-disk/environment predicate
- Resumable by re-running (no persisted run state)
- Bounded retries for transient failures
- Platform specifics isolated behind one adapter
- Centralized logging
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
