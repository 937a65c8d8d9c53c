"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Logging setup
- Pipeline metrics
"""
