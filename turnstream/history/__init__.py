"""Message persistence for turnstream."""
from .store import MessageStore, TurnRecords
from .db import Database, SQLiteMessageStore, get_database

__all__ = [
    'MessageStore', 'TurnRecords',
    'Database', 'SQLiteMessageStore', 'get_database',
]
