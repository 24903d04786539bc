"""Persistence layer - the driver contract and bundled drivers."""

from apiforge.persistence.driver import WHERE_OPERATORS, Driver, QueryOptions
from apiforge.persistence.factory import create_driver
from apiforge.persistence.memory import MemoryDriver
from apiforge.persistence.sql import SQLDriver

__all__ = [
    "Driver",
    "MemoryDriver",
    "QueryOptions",
    "SQLDriver",
    "WHERE_OPERATORS",
    "create_driver",
]
