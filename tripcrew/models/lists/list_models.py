from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Enum,
    UniqueConstraint, Index, JSON,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from tripcrew.core.database import Base


class ListType(str, enum.Enum):
    TODO = "TODO"
    KIT = "KIT"


class TemplateVisibility(str, enum.Enum):
    PRIVATE = "PRIVATE"
    PUBLIC = "PUBLIC"


class TodoActionType(str, enum.Enum):
    CREATE_CHOICE = "CREATE_CHOICE"
    ADD_SPEND = "ADD_SPEND"
    INVITE_PEOPLE = "INVITE_PEOPLE"
    SET_DATES = "SET_DATES"
    OPEN_URL = "OPEN_URL"


class MergeMode(str, enum.Enum):
    REPLACE = "REPLACE"
    MERGE_ADD = "MERGE_ADD"
    MERGE_ADD_ALLOW_DUPES = "MERGE_ADD_ALLOW_DUPES"
    NEW_INSTANCE = "NEW_INSTANCE"


class ListTemplate(Base):
    __tablename__ = "list_templates"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(Enum(ListType), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    visibility = Column(Enum(TemplateVisibility), nullable=False, default=TemplateVisibility.PRIVATE)
    tags = Column(JSON, nullable=True)
    published_at = Column(DateTime, nullable=True)
    forked_from_id = Column(Integer, ForeignKey("list_templates.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", foreign_keys=[owner_id], lazy="selectin")
    todo_items = relationship(
        "TodoItemTemplate",
        back_populates="template",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TodoItemTemplate.order_index",
    )
    kit_items = relationship(
        "KitItemTemplate",
        back_populates="template",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="KitItemTemplate.order_index",
    )

    __table_args__ = (
        Index("ix_list_templates_owner_id", "owner_id"),
        Index("ix_list_templates_visibility", "visibility"),
    )

    @property
    def owner_name(self):
        return self.owner.name if self.owner else None

    @property
    def items(self):
        return self.todo_items if self.type == ListType.TODO else self.kit_items


class TodoItemTemplate(Base):
    __tablename__ = "todo_item_templates"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("list_templates.id", ondelete="CASCADE"), nullable=False)
    label = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    action_type = Column(Enum(TodoActionType), nullable=True)
    action_data = Column(JSON, nullable=True)
    per_person = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=False, default=0)

    template = relationship("ListTemplate", back_populates="todo_items")


class KitItemTemplate(Base):
    __tablename__ = "kit_item_templates"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("list_templates.id", ondelete="CASCADE"), nullable=False)
    label = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    per_person = Column(Boolean, nullable=False, default=False)
    required = Column(Boolean, nullable=False, default=True)
    weight_grams = Column(Integer, nullable=True)
    category = Column(String, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)

    template = relationship("ListTemplate", back_populates="kit_items")


class ListInstance(Base):
    __tablename__ = "list_instances"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    type = Column(Enum(ListType), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    source_template_id = Column(Integer, ForeignKey("list_templates.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    todo_items = relationship(
        "TodoItemInstance",
        back_populates="instance",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TodoItemInstance.order_index",
    )
    kit_items = relationship(
        "KitItemInstance",
        back_populates="instance",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="KitItemInstance.order_index",
    )

    __table_args__ = (
        Index("ix_list_instances_trip_id", "trip_id"),
        Index("ix_list_instances_trip_type_title", "trip_id", "type", "title"),
    )

    @property
    def items(self):
        return self.todo_items if self.type == ListType.TODO else self.kit_items


class TodoItemInstance(Base):
    __tablename__ = "todo_item_instances"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("list_instances.id", ondelete="CASCADE"), nullable=False)
    label = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    action_type = Column(Enum(TodoActionType), nullable=True)
    action_data = Column(JSON, nullable=True)
    per_person = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=False, default=0)
    is_done = Column(Boolean, nullable=False, default=False)
    done_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    done_at = Column(DateTime, nullable=True)

    instance = relationship("ListInstance", back_populates="todo_items")


class KitItemInstance(Base):
    __tablename__ = "kit_item_instances"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("list_instances.id", ondelete="CASCADE"), nullable=False)
    label = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    per_person = Column(Boolean, nullable=False, default=False)
    required = Column(Boolean, nullable=False, default=True)
    weight_grams = Column(Integer, nullable=True)
    category = Column(String, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    is_packed = Column(Boolean, nullable=False, default=False)

    instance = relationship("ListInstance", back_populates="kit_items")


class ItemTick(Base):
    """Per-user tick on a per-person item. item_id points at a todo or kit row depending on item_type."""
    __tablename__ = "item_ticks"

    id = Column(Integer, primary_key=True, index=True)
    item_type = Column(Enum(ListType), nullable=False)
    item_id = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", foreign_keys=[user_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint("item_type", "item_id", "user_id", name="uq_item_tick_user"),
        Index("ix_item_ticks_item", "item_type", "item_id"),
    )
