"""
Processing Module
=================

Bounded context for retrieval-augmented ticket processing.

Responsibilities:
- Validate and open tickets
- Find similar historical tickets (embedding, vector search, rerank)
- Generate a suggested solution with confidence and reasoning
"""
