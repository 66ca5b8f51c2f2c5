from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import tender_intel.models  # noqa: F401  registers every table on Base
from tender_intel.database import Base


class InMemoryDatabase:
    """SQLite database living in memory, one per test case."""

    def __init__(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool
        )
        Base.metadata.create_all(bind=self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def session(self):
        return self.SessionLocal()

    def cleanup(self):
        Base.metadata.drop_all(bind=self.engine)
        self.engine.dispose()
