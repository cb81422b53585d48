"""Repository interface and its in-memory and SQLAlchemy implementations."""

from parking_kernel.stores.interfaces import ParkingStore
from parking_kernel.stores.memory_store import InMemoryParkingStore
from parking_kernel.stores.sqlalchemy_store import SqlAlchemyParkingStore

__all__ = ["ParkingStore", "InMemoryParkingStore", "SqlAlchemyParkingStore"]
