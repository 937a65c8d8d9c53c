"""
Ticket RAG
==========

Retrieval-augmented ticket resolution: embed a ticket, find similar
historical tickets, rerank them and generate a suggested solution.
"""

__version__ = "0.1.0"
