from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from sharezone.core.config import settings

IS_SQLITE = settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite")

# SQLite specific configuration for multi-threading
connect_args = {"check_same_thread": False} if IS_SQLITE else {}

engine = create_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    pool_pre_ping=True,
    connect_args=connect_args
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


if IS_SQLITE:
    # SQLite leaves foreign keys off per connection unless asked
    @event.listens_for(engine, "connect")
    def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
