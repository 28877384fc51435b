from contextlib import contextmanager
from pathlib import Path
import urllib.parse

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, scoped_session

from inventory_ledger.config import config
from inventory_ledger.exceptions import ConfigError

SUPPORTED_ENGINES = ('sqlite', 'postgresql')

class Database:
    """Database connection manager for the Inventory Ledger."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Database, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the database connection if not already initialized."""
        if self._initialized:
            return

        self._engine = None
        self._session_factory = None
        self._session = None
        self._initialized = True

    def initialize(self, connection_string=None):
        """Initialize database connection.

        Args:
            connection_string: Optional database connection string.
                              If not provided, will use configuration.
        """
        if connection_string is None:
            engine = config.get('DATABASE', 'engine', 'sqlite')
            if engine not in SUPPORTED_ENGINES:
                raise ConfigError(
                    f"Unsupported database engine: {engine}",
                    details={'engine': engine, 'supported': list(SUPPORTED_ENGINES)}
                )

            if engine == 'sqlite':
                connection_string = config.get_db_url()
            else:
                username = config.get('DATABASE', 'username', 'postgres')
                password = config.get('DATABASE', 'password', 'postgres')
                host = config.get('DATABASE', 'host', 'localhost')
                port = config.get('DATABASE', 'port', '5432')
                database = config.get('DATABASE', 'database', 'inventory_ledger')

                # URL encode the password to handle special characters
                password = urllib.parse.quote_plus(password)

                connection_string = f"{engine}://{username}:{password}@{host}:{port}/{database}"

        if self._engine is not None:
            self.dispose()

        echo = config.get_boolean('DATABASE', 'echo', False)
        url = make_url(connection_string)

        if url.get_backend_name() == 'sqlite':
            self._engine = self._create_sqlite_engine(url, echo)
        else:
            self._engine = create_engine(
                url,
                echo=echo,
                pool_size=config.get_int('DATABASE', 'pool_size', 10),
                max_overflow=config.get_int('DATABASE', 'max_overflow', 20),
                pool_timeout=config.get_int('DATABASE', 'pool_timeout', 30),
                pool_recycle=config.get_int('DATABASE', 'pool_recycle', 1800)
            )

        self._session_factory = sessionmaker(bind=self._engine)
        self._session = scoped_session(self._session_factory)

    def _create_sqlite_engine(self, url, echo):
        """Create a SQLite engine safe for concurrent sessions.

        pysqlite defers BEGIN until the first DML statement, which breaks
        SAVEPOINT handling. The driver's own transaction handling is turned off
        and every transaction is opened with BEGIN IMMEDIATE instead, so writers
        are serialised and savepoints behave.
        """
        database = url.database
        if database and database != ':memory:':
            Path(database).parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            url,
            echo=echo,
            connect_args={
                'timeout': config.get_int('DATABASE', 'sqlite_timeout', 30),
                'check_same_thread': False
            }
        )

        @event.listens_for(engine, 'connect')
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

        @event.listens_for(engine, 'begin')
        def _on_begin(conn):
            conn.exec_driver_sql('BEGIN IMMEDIATE')

        return engine

    def create_all_tables(self):
        """Create all tables defined in the models."""
        from inventory_ledger.models import Base
        Base.metadata.create_all(self.engine)

    def drop_all_tables(self):
        """Drop all tables from the database."""
        from inventory_ledger.models import Base
        Base.metadata.drop_all(self.engine)

    def dispose(self):
        """Close pooled connections and forget the engine."""
        if self._session is not None:
            self._session.remove()
        if self._engine is not None:
            self._engine.dispose()

        self._engine = None
        self._session_factory = None
        self._session = None

    @property
    def session(self):
        """Get the current database session."""
        if self._session is None:
            self.initialize()
        return self._session

    @property
    def engine(self):
        """Get the database engine."""
        if self._engine is None:
            self.initialize()
        return self._engine

    def new_session(self):
        """Get a fresh session that is not bound to the current thread's scope."""
        if self._session_factory is None:
            self.initialize()
        return self._session_factory()

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope around a series of operations."""
        session = self.new_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

# Global database instance
db = Database()

def get_session():
    """Get current database session."""
    return db.session()

@contextmanager
def session_scope():
    """Session scope context manager."""
    with db.session_scope() as session:
        yield session
