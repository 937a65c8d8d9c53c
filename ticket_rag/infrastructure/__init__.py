"""
Infrastructure
==============

Provider backends (embedding, vector store, rerank, LLM), the service
container and the factory that builds it from settings.
"""
