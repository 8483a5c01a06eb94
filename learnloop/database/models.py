"""SQLAlchemy ORM models for LearnLoop."""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Float, ForeignKey, Text
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class SessionRecord(Base):
    """One learning session, live or finished."""

    __tablename__ = "learning_sessions"

    id = Column(String(32), primary_key=True)
    child_id = Column(String(64), nullable=False, index=True)
    age_group = Column(String(16), nullable=False)      # ages6to9 | ages10to13 | ages14to16
    session_type = Column(String(16), nullable=False)   # lesson | practice | review | assessment
    state = Column(String(16), nullable=False, default="not_started")
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # timing config, minutes
    recommended_duration = Column(Integer, nullable=False)
    break_duration = Column(Integer, nullable=False)
    break_interval = Column(Integer, nullable=False)
    max_duration = Column(Integer, nullable=False)
    warning_before_break = Column(Integer, nullable=False)

    # seconds
    total_duration = Column(Float, nullable=False, default=0.0)
    break_time = Column(Float, nullable=False, default=0.0)

    interaction_count = Column(Integer, nullable=False, default=0)
    response_samples = Column(Integer, nullable=False, default=0)
    average_response_time = Column(Float, nullable=False, default=0.0)
    completion_rate = Column(Float, nullable=False, default=0.0)
    break_reminders = Column(Integer, nullable=False, default=0)
    reminders_acknowledged = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)
    completion_notes = Column(Text, nullable=True)
    pause_reason = Column(Text, nullable=True)

    objectives = relationship(
        "ObjectiveRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ObjectiveRecord.position",
    )
    markers = relationship(
        "ProgressMarkerRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ProgressMarkerRecord.position",
    )

    def __repr__(self) -> str:
        return (
            f"<SessionRecord id={self.id} child={self.child_id} "
            f"state={self.state}>"
        )


class ObjectiveRecord(Base):
    """A learning objective belonging to a session, in order."""

    __tablename__ = "learning_objectives"

    id = Column(String(32), primary_key=True)
    session_id = Column(
        String(32), ForeignKey("learning_sessions.id"), nullable=False,
    )
    position = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=False)
    category = Column(String(16), nullable=False, default="knowledge")
    target_level = Column(String(16), nullable=False, default="beginner")
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)

    session = relationship("SessionRecord", back_populates="objectives")

    def __repr__(self) -> str:
        return (
            f"<ObjectiveRecord id={self.id} session={self.session_id} "
            f"completed={self.completed}>"
        )


class ProgressMarkerRecord(Base):
    """A timestamped log entry of a session (pause, break, objective...)."""

    __tablename__ = "progress_markers"

    id = Column(String(32), primary_key=True)
    session_id = Column(
        String(32), ForeignKey("learning_sessions.id"), nullable=False,
    )
    position = Column(Integer, nullable=False, default=0)
    timestamp = Column(DateTime, nullable=False, default=datetime.now)
    description = Column(Text, nullable=False)
    objective_id = Column(String(32), nullable=True)   # no FK: objectives may be replaced

    session = relationship("SessionRecord", back_populates="markers")

    def __repr__(self) -> str:
        return (
            f"<ProgressMarkerRecord id={self.id} session={self.session_id} "
            f"description={self.description!r}>"
        )
