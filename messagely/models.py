"""
SQLAlchemy ORM models for database tables.

Handlers talk to these tables with parameterized SQL (see storage.py);
the models exist so the schema can be created on startup and in tests.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text

from messagely.storage import Base


class User(Base):
    """
    Message participant. Read-only from the messages API.

    Table: users
    Primary Key: username
    """
    __tablename__ = "users"

    username = Column(String, primary_key=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    phone = Column(String, nullable=False)


class Message(Base):
    """
    Direct message between two users.

    Table: messages
    Primary Key: id (generated by the database)
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_username = Column(String, ForeignKey("users.username"), nullable=False, index=True)
    to_username = Column(String, ForeignKey("users.username"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    sent_at = Column(String, nullable=False)  # ISO-8601 UTC string
    read_at = Column(String, nullable=True)  # ISO-8601 UTC string, set by recipient
