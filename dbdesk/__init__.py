"""
JaySoft-DBDesk - A desktop-side engine for managing local PostgreSQL databases.

This package provides tools to:
- Create, drop, duplicate and import databases without leaving half-built ones behind
- Run queries while capturing their execution plan without side effects
- Introspect table layouts and key constraints
- Generate foreign-key-consistent dummy data and export it as CSV
"""

__version__ = "1.0.0"
__author__ = "JaySoft Development"
__email__ = "info@jaysoft.dev"

from dbdesk.core.database import DatabaseConnection
from dbdesk.core.analyzer import SchemaAnalyzer
from dbdesk.core.generator import DummyDataGenerator
from dbdesk.core.lifecycle import LifecycleOrchestrator
from dbdesk.core.query_engine import QueryEngine
from dbdesk.core.channel import RequestChannel

__all__ = [
    "DatabaseConnection",
    "SchemaAnalyzer",
    "DummyDataGenerator",
    "LifecycleOrchestrator",
    "QueryEngine",
    "RequestChannel",
]
