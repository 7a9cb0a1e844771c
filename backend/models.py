# models.py — Database models for Donelist
# - Integer primary keys everywhere (negative ids are reserved for pseudo
#   namespaces and link-share principals)
# - Namespace → List → Task hierarchy with Kanban buckets
# - User/team sharing relations on namespaces and lists
# - Link shares, labels, attachments, notifications, migration status

from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, Boolean, BigInteger, Integer, Float,
    ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(dt):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ============================================================
# ENUMS
# ============================================================

class SharingType(int, PyEnum):
    UNKNOWN = 0
    WITHOUT_PASSWORD = 1
    WITH_PASSWORD = 2


class RepeatMode(int, PyEnum):
    DEFAULT = 0
    MONTH = 1
    FROM_CURRENT_DATE = 2


class RelationKind(str, PyEnum):
    SUBTASK = "subtask"
    PARENTTASK = "parenttask"
    RELATED = "related"
    DUPLICATEOF = "duplicateof"
    DUPLICATES = "duplicates"
    BLOCKING = "blocking"
    BLOCKED = "blocked"
    PRECEDES = "precedes"
    FOLLOWS = "follows"
    COPIEDFROM = "copiedfrom"
    COPIEDTO = "copiedto"


# ============================================================
# USERS & TEAMS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(250), unique=True, nullable=False, index=True)
    email = Column(String(250), unique=True, nullable=True, index=True)
    name = Column(String(250), nullable=False, default="")
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    email_reminders_enabled = Column(Boolean, default=True, nullable=False)
    overdue_tasks_reminders_enabled = Column(Boolean, default=True, nullable=False)
    discoverable_by_name = Column(Boolean, default=False, nullable=False)
    discoverable_by_email = Column(Boolean, default=False, nullable=False)
    password_reset_token = Column(String(128), nullable=True, unique=True)
    password_reset_token_expires = Column(DateTime(timezone=True), nullable=True)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(250), nullable=False)
    description = Column(Text, nullable=False, default="")
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    admin = Column(Boolean, default=False, nullable=False)
    created = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
    )


# ============================================================
# NAMESPACES & LISTS
# ============================================================

class Namespace(Base):
    __tablename__ = "namespaces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(250), nullable=False)
    description = Column(Text, nullable=False, default="")
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_archived = Column(Boolean, default=False, nullable=False)
    hex_color = Column(String(6), nullable=False, default="")
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TaskList(Base):
    __tablename__ = "lists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(250), nullable=False)
    description = Column(Text, nullable=False, default="")
    identifier = Column(String(10), nullable=False, default="")
    hex_color = Column(String(6), nullable=False, default="")
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    namespace_id = Column(Integer, ForeignKey("namespaces.id", ondelete="CASCADE"), nullable=False, index=True)
    is_archived = Column(Boolean, default=False, nullable=False)
    background_file_id = Column(Integer, ForeignKey("files.id", ondelete="SET NULL"), nullable=True)
    position = Column(Float, nullable=False, default=0)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================
# SHARING RELATIONS
# ============================================================

class NamespaceUser(Base):
    __tablename__ = "users_namespaces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    namespace_id = Column(Integer, ForeignKey("namespaces.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    right = Column(Integer, nullable=False, default=0)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("namespace_id", "user_id", name="uq_namespace_user"),
    )


class NamespaceTeam(Base):
    __tablename__ = "team_namespaces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    namespace_id = Column(Integer, ForeignKey("namespaces.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    right = Column(Integer, nullable=False, default=0)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("namespace_id", "team_id", name="uq_namespace_team"),
    )


class ListUser(Base):
    __tablename__ = "users_lists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    list_id = Column(Integer, ForeignKey("lists.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    right = Column(Integer, nullable=False, default=0)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("list_id", "user_id", name="uq_list_user"),
    )


class ListTeam(Base):
    __tablename__ = "team_lists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    list_id = Column(Integer, ForeignKey("lists.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    right = Column(Integer, nullable=False, default=0)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("list_id", "team_id", name="uq_list_team"),
    )


class LinkSharing(Base):
    __tablename__ = "link_shares"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hash = Column(String(40), unique=True, nullable=False, index=True)
    name = Column(String(250), nullable=False, default="")
    list_id = Column(Integer, ForeignKey("lists.id", ondelete="CASCADE"), nullable=False, index=True)
    right = Column(Integer, nullable=False, default=0)
    sharing_type = Column(Integer, nullable=False, default=SharingType.UNKNOWN.value)
    password = Column(String, nullable=True)
    shared_by_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================
# BUCKETS & TASKS
# ============================================================

class Bucket(Base):
    __tablename__ = "buckets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(250), nullable=False)
    list_id = Column(Integer, ForeignKey("lists.id", ondelete="CASCADE"), nullable=False, index=True)
    limit = Column(Integer, nullable=False, default=0)
    position = Column(Float, nullable=False, default=0)
    is_done_bucket = Column(Boolean, nullable=False, default=False)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    done = Column(Boolean, nullable=False, default=False, index=True)
    done_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True, index=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    repeat_after = Column(BigInteger, nullable=False, default=0)
    repeat_mode = Column(Integer, nullable=False, default=RepeatMode.DEFAULT.value)
    priority = Column(Integer, nullable=False, default=0)
    percent_done = Column(Float, nullable=False, default=0)
    hex_color = Column(String(6), nullable=False, default="")
    list_id = Column(Integer, ForeignKey("lists.id", ondelete="CASCADE"), nullable=False, index=True)
    bucket_id = Column(Integer, ForeignKey("buckets.id", ondelete="SET NULL"), nullable=True, index=True)
    position = Column(Float, nullable=False, default=0)
    index = Column(Integer, nullable=False, default=0)
    uid = Column(String(250), nullable=False, default="", index=True)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_task_list_done", "list_id", "done"),
    )


class TaskAssignee(Base):
    __tablename__ = "task_assignees"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_assignee"),
    )


class TaskReminder(Base):
    __tablename__ = "task_reminders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    reminder = Column(DateTime(timezone=True), nullable=False, index=True)
    created = Column(DateTime(timezone=True), default=utcnow)


class TaskRelation(Base):
    __tablename__ = "task_relations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    other_task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    relation_kind = Column(String(50), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("task_id", "other_task_id", "relation_kind", name="uq_task_relation"),
    )


class TaskAttachment(Base):
    __tablename__ = "task_attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    file_id = Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created = Column(DateTime(timezone=True), default=utcnow)


# ============================================================
# LABELS
# ============================================================

class Label(Base):
    __tablename__ = "labels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(250), nullable=False)
    description = Column(Text, nullable=False, default="")
    hex_color = Column(String(6), nullable=False, default="")
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created = Column(DateTime(timezone=True), default=utcnow)
    updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class LabelTask(Base):
    __tablename__ = "label_task"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    label_id = Column(Integer, ForeignKey("labels.id", ondelete="CASCADE"), nullable=False, index=True)
    created = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("task_id", "label_id", name="uq_label_task"),
    )


# ============================================================
# FILES, NOTIFICATIONS, MIGRATIONS
# ============================================================

class File(Base):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, default="")
    mime = Column(String(250), nullable=True)
    size = Column(BigInteger, nullable=False, default=0)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created = Column(DateTime(timezone=True), default=utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(250), nullable=False)
    subject = Column(String(250), nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    read_at = Column(DateTime(timezone=True), nullable=True)
    created = Column(DateTime(timezone=True), default=utcnow, index=True)


class MigrationStatus(Base):
    __tablename__ = "migration_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    migrator_name = Column(String(255), nullable=False)
    created = Column(DateTime(timezone=True), default=utcnow)
