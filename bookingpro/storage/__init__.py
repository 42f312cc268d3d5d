from bookingpro.storage.slot_store import SlotStore
from bookingpro.storage.store import InMemoryStore, RowStore, row_matches

__all__ = ["RowStore", "InMemoryStore", "SlotStore", "row_matches"]
