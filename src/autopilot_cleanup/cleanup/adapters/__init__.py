"""Adapters layer - Infrastructure implementations for cleanup operations.

- GraphRegistryLister: Graph implementation of IRegistryLister
- GraphDeletionAdapter: Graph implementation of IDeletionPort
- GraphSyncService: Graph implementation of ISyncService
- SerialFileReader: CSV/Excel implementation of ISerialFileReader
- CsvReportWriter: CSV implementation of IReportWriter
"""

from .csv_report_writer import CsvReportWriter
from .graph_deletion import GraphDeletionAdapter
from .graph_registry import GraphRegistryLister
from .graph_sync import GraphSyncService
from .serial_file_reader import SerialFileReader

__all__ = [
    "CsvReportWriter",
    "GraphDeletionAdapter",
    "GraphRegistryLister",
    "GraphSyncService",
    "SerialFileReader",
]
