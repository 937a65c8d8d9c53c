"""
Shared Kernel Module
====================

Generic infrastructure shared by every part of the pipeline: structured
logging and the metrics collector.

DO NOT add pipeline business logic to the shared kernel.
"""
