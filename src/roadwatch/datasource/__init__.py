"""
Data Source Module
==================

External data the core consumes: congestion and accident snapshots, and
the recommendation stream.

Components:
    - DataSource: Protocol every backend implements
    - MockDataSource: Deterministic Taiyuan seed data and mock SSE stream
    - HttpDataSource: REST + chat-completions over httpx

Design Philosophy:
    Data sources are pluggable black boxes. The scheduler and the
    recommendation service behave identically with either backend.
"""

from roadwatch.datasource.base import CongestionSnapshot, DataSource
from roadwatch.datasource.mock import MockDataSource
from roadwatch.datasource.http import HttpDataSource

__all__ = [
    "CongestionSnapshot",
    "DataSource",
    "MockDataSource",
    "HttpDataSource",
]
