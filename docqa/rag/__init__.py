"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Text extraction from uploaded documents
- Sentence-packing and word-window chunking
- Vector storage (JSON snapshot, FAISS, Chroma) and cosine ranking
- Semantic retrieval and answer orchestration
"""
