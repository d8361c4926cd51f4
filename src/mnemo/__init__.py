"""
mnemo - local, citation-preserving retrieval over an encrypted note store.

Key components:
- core/: Data types, exceptions, and logging utilities
- crypto/: Key derivation, key wrapping, and authenticated encryption
- retrieval/: Chunking, MMR selection, token budgeting, and orchestration
- providers/: Embedding and answer-synthesis backends (Ollama, hashing)
- jobs/: Asynchronous chunk-then-embed job queue with retry/backoff
- storage/: Persistent store schema (boundary only)
- config: Configuration loading and validation
"""

__version__ = "0.1.0"
