"""SQLAlchemy ORM models for the gig pack backend."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class GigStatus(enum.Enum):
    draft = "draft"
    confirmed = "confirmed"
    tentative = "tentative"
    cancelled = "cancelled"


class InvitationStatus(enum.Enum):
    pending = "pending"
    invited = "invited"
    accepted = "accepted"
    declined = "declined"


class MaterialKind(enum.Enum):
    rehearsal = "rehearsal"
    performance = "performance"
    charts = "charts"
    reference = "reference"
    other = "other"


class NotificationType(enum.Enum):
    invitation_received = "invitation_received"


def _text_enum(enum_cls: type[enum.Enum]) -> Enum:
    # Stored as plain text so schema.sql owns the CHECK constraints.
    return Enum(
        enum_cls,
        native_enum=False,
        create_constraint=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Project(Base, TimestampMixin):
    __tablename__ = "projects"
    __table_args__ = (Index("idx_projects_owner_id", "owner_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    default_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    gigs: Mapped[list["Gig"]] = relationship(back_populates="project")


class MusicianContact(Base, TimestampMixin):
    __tablename__ = "musician_contacts"
    __table_args__ = (Index("idx_musician_contacts_owner_id", "owner_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class Gig(Base, TimestampMixin):
    __tablename__ = "gigs"
    __table_args__ = (
        Index("idx_gigs_owner_id", "owner_id"),
        Index("idx_gigs_project_id", "project_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[GigStatus] = mapped_column(
        _text_enum(GigStatus), default=GigStatus.confirmed, nullable=False
    )
    band_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    call_time: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    on_stage_time: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    venue_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    venue_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    venue_maps_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hero_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    band_logo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    gig_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    theme: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    poster_skin: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    accent_color: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    dress_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    backline_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parking_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    setlist: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    project: Mapped[Optional[Project]] = relationship(back_populates="gigs", lazy="selectin")
    schedule_items: Mapped[list["GigScheduleItem"]] = relationship(
        back_populates="gig",
        order_by="GigScheduleItem.sort_order",
        cascade="all, delete",
        passive_deletes=True,
    )
    materials: Mapped[list["GigMaterial"]] = relationship(
        back_populates="gig",
        order_by="GigMaterial.sort_order",
        cascade="all, delete",
        passive_deletes=True,
    )
    packing_items: Mapped[list["GigPackingItem"]] = relationship(
        back_populates="gig",
        order_by="GigPackingItem.sort_order",
        cascade="all, delete",
        passive_deletes=True,
    )
    setlist_sections: Mapped[list["SetlistSection"]] = relationship(
        back_populates="gig",
        order_by="SetlistSection.sort_order",
        cascade="all, delete",
        passive_deletes=True,
    )
    roles: Mapped[list["GigRole"]] = relationship(
        back_populates="gig",
        order_by="GigRole.sort_order",
        cascade="all, delete",
        passive_deletes=True,
    )
    shares: Mapped[list["GigShare"]] = relationship(
        back_populates="gig", cascade="all, delete", passive_deletes=True
    )

    def is_managed_by(self, user_id: uuid.UUID) -> bool:
        """Return ``True`` when ``user_id`` owns the gig directly or via its project."""

        if self.owner_id is not None and self.owner_id == user_id:
            return True
        return self.project is not None and self.project.owner_id == user_id


class GigScheduleItem(Base):
    __tablename__ = "gig_schedule_items"
    __table_args__ = (Index("idx_gig_schedule_items_gig_id", "gig_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    gig_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("gigs.id", ondelete="CASCADE"), nullable=False
    )
    time: Mapped[str] = mapped_column(String, default="", nullable=False)
    label: Mapped[str] = mapped_column(String, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    gig: Mapped[Gig] = relationship(back_populates="schedule_items")


class GigMaterial(Base):
    __tablename__ = "gig_materials"
    __table_args__ = (Index("idx_gig_materials_gig_id", "gig_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    gig_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("gigs.id", ondelete="CASCADE"), nullable=False
    )
    label: Mapped[str] = mapped_column(String, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[MaterialKind] = mapped_column(
        _text_enum(MaterialKind), default=MaterialKind.other, nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    gig: Mapped[Gig] = relationship(back_populates="materials")


class GigPackingItem(Base):
    __tablename__ = "gig_packing_items"
    __table_args__ = (Index("idx_gig_packing_items_gig_id", "gig_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    gig_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("gigs.id", ondelete="CASCADE"), nullable=False
    )
    label: Mapped[str] = mapped_column(String, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    gig: Mapped[Gig] = relationship(back_populates="packing_items")


class SetlistSection(Base):
    __tablename__ = "setlist_sections"
    __table_args__ = (Index("idx_setlist_sections_gig_id", "gig_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    gig_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("gigs.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    gig: Mapped[Gig] = relationship(back_populates="setlist_sections")
    items: Mapped[list["SetlistItem"]] = relationship(
        back_populates="section",
        order_by="SetlistItem.sort_order",
        cascade="all, delete",
        passive_deletes=True,
    )


class SetlistItem(Base):
    __tablename__ = "setlist_items"
    __table_args__ = (Index("idx_setlist_items_section_id", "section_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    section_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("setlist_sections.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    artist: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    key: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tempo: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    section: Mapped[SetlistSection] = relationship(back_populates="items")


class GigRole(Base, TimestampMixin):
    __tablename__ = "gig_roles"
    __table_args__ = (
        Index("idx_gig_roles_gig_id", "gig_id"),
        Index("idx_gig_roles_musician_id", "musician_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    gig_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("gigs.id", ondelete="CASCADE"), nullable=False
    )
    role_name: Mapped[str] = mapped_column(String, nullable=False)
    musician_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    musician_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    contact_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("musician_contacts.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    invitation_status: Mapped[InvitationStatus] = mapped_column(
        _text_enum(InvitationStatus), default=InvitationStatus.pending, nullable=False
    )
    responded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    agreed_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    expected_payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    gig: Mapped[Gig] = relationship(back_populates="roles")
    contact: Mapped[Optional[MusicianContact]] = relationship()


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_user_id", "user_id"),
        Index(
            "idx_notifications_unique_user_gig_type",
            "user_id",
            "gig_id",
            "type",
            unique=True,
            postgresql_where=text("gig_id IS NOT NULL"),
            sqlite_where=text("gig_id IS NOT NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    type: Mapped[NotificationType] = mapped_column(_text_enum(NotificationType), nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    gig_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("gigs.id", ondelete="CASCADE"), nullable=True
    )
    gig_role_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("gig_roles.id", ondelete="CASCADE"), nullable=True
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class GigShare(Base, TimestampMixin):
    __tablename__ = "gig_shares"
    __table_args__ = (Index("idx_gig_shares_gig_id", "gig_id"),)

    token: Mapped[str] = mapped_column(String, primary_key=True)
    gig_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("gigs.id", ondelete="CASCADE"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    gig: Mapped[Gig] = relationship(back_populates="shares")
