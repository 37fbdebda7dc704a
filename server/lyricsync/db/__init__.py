from lyricsync.db.session import (
    create_db_engine,
    create_session_factory,
    get_session_factory,
    init_db,
    write_transaction,
)
from lyricsync.db.tables import Base, LyricsVersionRow, SongRow

__all__ = [
    "Base",
    "LyricsVersionRow",
    "SongRow",
    "create_db_engine",
    "create_session_factory",
    "get_session_factory",
    "init_db",
    "write_transaction",
]
