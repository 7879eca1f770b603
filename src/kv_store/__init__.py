"""
kv_store - File-backed Key-Value Store

A single-node key-value store where every database is one file holding
named buckets, with atomic bulk writes, snapshot reads and a small HTTP API.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
