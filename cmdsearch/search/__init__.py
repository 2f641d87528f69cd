"""
Command Catalog Hybrid Search Engine

Keyword prefiltering plus embedding similarity over the command catalog.

Modules:
    stopwords   — Spanish and English stopword lists
    keywords    — Query keyword extraction
    candidates  — FTS5 candidate filtering with fallback to all active commands
    vectors     — Vector BLOB encoding and cosine similarity
    store       — Per-command embedding persistence
    ranker      — Cosine ranking with threshold, tie-break and limit
    embeddings  — Embedding provider calls and embedding text
    indexer     — Embedding generation and rebuilds for stored commands
    search      — Query pipeline and filtered search
"""
