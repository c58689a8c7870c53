"""SQLAlchemy database models for the kanban store.

Timestamps are stored as the ISO-8601 strings the client sends so that
values round-trip unchanged.
"""
from sqlalchemy import (Boolean, Column, ForeignKey, Index, Integer, String,
                        Table, Text, create_engine, event)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

# Create base class for SQLAlchemy models
Base = declarative_base()

# Association table for notes and tasks
note_tasks = Table(
    "note_tasks",
    Base.metadata,
    Column(
        "note_id", String(255),
        ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True,
    ),
    Column(
        "task_id", String(255),
        ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True,
    ),
)


class DBBoard(Base):
    """Database model for a board."""
    __tablename__ = "boards"
    id = Column(String(255), primary_key=True)
    name = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<Board(id='{self.id}', name='{self.name}')>"


class DBColumn(Base):
    """Database model for a board column."""
    __tablename__ = "columns"
    id = Column(String(255), primary_key=True)
    board_id = Column(
        String(255), ForeignKey("boards.id", ondelete="CASCADE"), nullable=False
    )
    title = Column(Text, nullable=False)
    position = Column(Integer, nullable=False)

    __table_args__ = (Index("idx_columns_board_id", "board_id"),)

    def __repr__(self) -> str:
        return f"<Column(id='{self.id}', title='{self.title}', position={self.position})>"


class DBTask(Base):
    """Database model for a task.

    board_id and column_id are both NULL for standalone tasks.
    """
    __tablename__ = "tasks"
    id = Column(String(255), primary_key=True)
    board_id = Column(
        String(255), ForeignKey("boards.id", ondelete="CASCADE"), nullable=True
    )
    column_id = Column(
        String(255), ForeignKey("columns.id", ondelete="CASCADE"), nullable=True
    )
    heading = Column(Text, nullable=False)
    tldr = Column(Text, default="", server_default="")
    description = Column(Text, default="", server_default="")
    priority = Column(String(50), default="medium", server_default="medium")
    tags = Column(Text, default="[]", server_default="[]")
    due_date = Column(Text, default="", server_default="")
    status = Column(Text, nullable=False)
    completed = Column(Boolean, nullable=False, default=False, server_default="0")
    position = Column(Integer, nullable=False)
    created_at = Column(Text, nullable=False)

    __table_args__ = (
        Index("idx_tasks_board_id", "board_id"),
        Index("idx_tasks_column_id", "column_id"),
    )

    def __repr__(self) -> str:
        return f"<Task(id='{self.id}', heading='{self.heading}')>"


class DBChecklist(Base):
    """Database model for a task checklist.

    ``items`` holds the serialized ordered list of {id, text, completed}.
    """
    __tablename__ = "checklists"
    id = Column(String(255), primary_key=True)
    task_id = Column(
        String(255), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    title = Column(Text, nullable=False)
    items = Column(Text, nullable=False)

    __table_args__ = (Index("idx_checklists_task_id", "task_id"),)


class DBAttachment(Base):
    """Database model for a task attachment."""
    __tablename__ = "attachments"
    id = Column(String(255), primary_key=True)
    task_id = Column(
        String(255), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    url = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    cover_image = Column(Boolean, nullable=False, default=False, server_default="0")
    created_at = Column(Text, nullable=False)

    __table_args__ = (Index("idx_attachments_task_id", "task_id"),)


class DBComment(Base):
    """Database model for a task comment."""
    __tablename__ = "task_comments"
    id = Column(String(255), primary_key=True)
    task_id = Column(
        String(255), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    text = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)

    __table_args__ = (Index("idx_task_comments_task_id", "task_id"),)


class DBTimelineEntry(Base):
    """Database model for an append-only task timeline entry."""
    __tablename__ = "task_timeline"
    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(
        String(255), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    timestamp = Column(Text, nullable=False)
    action = Column(Text, nullable=False)

    __table_args__ = (Index("idx_task_timeline_task_id", "task_id"),)


class DBDeletedTask(Base):
    """Archival snapshot of a deleted task.

    Board and column references are denormalized and may point at rows
    that no longer exist, so they carry no foreign keys.
    """
    __tablename__ = "deleted_tasks"
    id = Column(Integer, primary_key=True, autoincrement=True)
    board_id = Column(String(255), nullable=True)
    board_name = Column(Text, nullable=False, default="")
    column_id = Column(String(255), nullable=True)
    column_title = Column(Text, nullable=False, default="")
    task_id = Column(String(255), nullable=False)
    task_data = Column(Text, nullable=False)
    deleted_at = Column(Text, nullable=False)


class DBSetting(Base):
    """Key/value application setting."""
    __tablename__ = "settings"
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)


class DBNotification(Base):
    """Database model for a reminder notification.

    task_id is a plain reference: bulk board saves replace every task row
    and must not wipe notification history.
    """
    __tablename__ = "notifications"
    id = Column(String(255), primary_key=True)
    task_id = Column(String(255), nullable=False)
    title = Column(Text, nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    trigger_type = Column(String(50), nullable=False)
    sent_at = Column(Text, nullable=False)
    read_at = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_notifications_task_trigger", "task_id", "trigger_type"),
    )


class DBNote(Base):
    """Database model for note metadata.

    ``content`` only holds legacy inline bodies; file-backed notes keep it empty.
    """
    __tablename__ = "notes"
    id = Column(String(255), primary_key=True)
    title = Column(Text, nullable=False, default="")
    content = Column(Text, nullable=False, default="", server_default="")
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<Note(id='{self.id}', title='{self.title}')>"


Index("idx_note_tasks_task_id", note_tasks.c.task_id)


def create_store_engine(db_url: str, in_memory: bool = False):
    """Create an engine with the store's SQLite connection settings.

    File databases use WAL journaling and NORMAL synchronous mode. The
    in-memory variant shares one connection across the process so every
    session sees the same database. Foreign keys are enforced on every
    connection, which is what makes deletes cascade.
    """
    if in_memory:
        engine = create_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            db_url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if not in_memory:
            # WAL mode: writes go to separate journal, preventing corruption on crash
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return engine


def get_session_factory(engine):
    """Create a session factory bound to the engine."""
    return sessionmaker(bind=engine)
