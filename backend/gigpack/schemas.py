"""Pydantic models for API requests and responses."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

GigStatusValue = Literal["draft", "confirmed", "tentative", "cancelled"]
MaterialKindValue = Literal["rehearsal", "performance", "charts", "reference", "other"]
InvitationStatusValue = Literal["pending", "invited", "accepted", "declined"]


def _to_camel(string: str) -> str:
    """Convert ``snake_case`` strings to ``camelCase``."""

    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _find_duplicate(ids: Iterable[Optional[UUID]]) -> Optional[UUID]:
    seen: set[UUID] = set()
    for value in ids:
        if value is None:
            continue
        if value in seen:
            return value
        seen.add(value)
    return None


class CamelModel(BaseModel):
    """Base model that renders JSON keys using ``camelCase``."""

    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class GigHeaderInput(BaseModel):
    """Gig header fields as submitted by the editor.

    Keys are ``snake_case`` to match the stored column names. Fields omitted
    from the payload are distinguishable through ``model_fields_set``.
    """

    title: Optional[str] = None
    date: Optional[datetime] = None
    project_id: Optional[UUID] = None
    status: Optional[GigStatusValue] = None
    band_name: Optional[str] = None
    call_time: Optional[str] = None
    on_stage_time: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    venue_maps_url: Optional[str] = None
    hero_image_url: Optional[str] = None
    band_logo_url: Optional[str] = None
    gig_type: Optional[str] = None
    theme: Optional[str] = None
    poster_skin: Optional[str] = None
    accent_color: Optional[str] = None
    dress_code: Optional[str] = None
    backline_notes: Optional[str] = None
    parking_notes: Optional[str] = None
    setlist: Optional[str] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    payment_notes: Optional[str] = None

    @field_validator("project_id", mode="before")
    @classmethod
    def _blank_project(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("date", mode="before")
    @classmethod
    def _expand_date(cls, value: Any) -> Any:
        # Bare calendar dates from the date picker are stored as UTC midnight.
        if isinstance(value, str) and len(value) == 10:
            return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        return value


class ScheduleItemInput(CamelModel):
    id: Optional[UUID] = None
    time: str = ""
    label: str

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("time", mode="before")
    @classmethod
    def _null_time(cls, value: Any) -> Any:
        return "" if value is None else value


class MaterialInput(CamelModel):
    id: Optional[UUID] = None
    label: str
    url: str
    kind: MaterialKindValue = "other"

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id(cls, value: Any) -> Any:
        return _blank_to_none(value)


class PackingItemInput(CamelModel):
    id: Optional[UUID] = None
    label: str

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id(cls, value: Any) -> Any:
        return _blank_to_none(value)


class SetlistSongInput(CamelModel):
    id: Optional[UUID] = None
    title: str
    artist: Optional[str] = None
    key: Optional[str] = None
    tempo: Optional[str] = None
    notes: Optional[str] = None
    reference_url: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id(cls, value: Any) -> Any:
        return _blank_to_none(value)


class SetlistSectionInput(CamelModel):
    id: Optional[UUID] = None
    name: str
    songs: List[SetlistSongInput] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id(cls, value: Any) -> Any:
        return _blank_to_none(value)


class RoleInput(CamelModel):
    """A lineup slot in the submitted gig pack."""

    gig_role_id: Optional[UUID] = None
    role: str = Field(..., min_length=1)
    name: Optional[str] = None
    notes: Optional[str] = None
    user_id: Optional[UUID] = None
    linked_user_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None

    @field_validator("gig_role_id", "user_id", "linked_user_id", "contact_id", mode="before")
    @classmethod
    def _blank_ids(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("role")
    @classmethod
    def _role_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("role must not be blank")
        return value

    @property
    def linked_account_id(self) -> Optional[UUID]:
        return self.user_id or self.linked_user_id


class SaveGigPackRequest(CamelModel):
    gig: GigHeaderInput
    schedule: List[ScheduleItemInput] = Field(default_factory=list)
    materials: List[MaterialInput] = Field(default_factory=list)
    packing: List[PackingItemInput] = Field(default_factory=list)
    setlist: List[SetlistSectionInput] = Field(default_factory=list)
    roles: List[RoleInput] = Field(default_factory=list)
    share_token: Optional[str] = None
    is_editing: bool = False
    gig_id: Optional[UUID] = None

    @field_validator("share_token", "gig_id", mode="before")
    @classmethod
    def _blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @model_validator(mode="after")
    def _check_collections(self) -> "SaveGigPackRequest":
        collections = {
            "schedule": (item.id for item in self.schedule),
            "materials": (item.id for item in self.materials),
            "packing": (item.id for item in self.packing),
            "setlist": (section.id for section in self.setlist),
            "setlist songs": (song.id for section in self.setlist for song in section.songs),
            "roles": (role.gig_role_id for role in self.roles),
        }
        for name, ids in collections.items():
            duplicate = _find_duplicate(ids)
            if duplicate is not None:
                raise ValueError(f"{name} contains duplicate id {duplicate}")

        if not self.editing and not (self.gig.title and self.gig.title.strip()):
            raise ValueError("gig.title is required when creating a gig")
        return self

    @property
    def editing(self) -> bool:
        return self.is_editing and self.gig_id is not None


class SaveGigPackResponse(BaseModel):
    id: UUID
    public_slug: Optional[str]


class ScheduleItemRead(BaseModel):
    id: UUID
    time: str
    label: str

    model_config = ConfigDict(from_attributes=True)


class MaterialRead(BaseModel):
    id: UUID
    label: str
    url: str
    kind: str

    model_config = ConfigDict(from_attributes=True)


class PackingItemRead(BaseModel):
    id: UUID
    label: str

    model_config = ConfigDict(from_attributes=True)


class SetlistSongRead(CamelModel):
    id: UUID
    title: str
    artist: Optional[str] = None
    key: Optional[str] = None
    tempo: Optional[str] = None
    notes: Optional[str] = None
    reference_url: Optional[str] = None


class SetlistSectionRead(CamelModel):
    id: UUID
    name: str
    songs: List[SetlistSongRead] = Field(default_factory=list)


class PublicLineupMemberRead(CamelModel):
    role: str
    name: Optional[str] = None
    notes: Optional[str] = None
    invitation_status: Optional[InvitationStatusValue] = None


class LineupMemberRead(PublicLineupMemberRead):
    gig_role_id: UUID
    user_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    agreed_fee: Optional[Decimal] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    expected_payment_date: Optional[date] = None
    is_paid: bool = False


class GigPackBase(BaseModel):
    id: UUID
    title: str
    status: GigStatusValue
    date: datetime
    band_name: Optional[str] = None
    call_time: Optional[str] = None
    on_stage_time: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    venue_maps_url: Optional[str] = None
    hero_image_url: Optional[str] = None
    band_logo_url: Optional[str] = None
    gig_type: Optional[str] = None
    theme: Optional[str] = None
    poster_skin: Optional[str] = None
    accent_color: Optional[str] = None
    dress_code: Optional[str] = None
    backline_notes: Optional[str] = None
    parking_notes: Optional[str] = None
    setlist: Optional[str] = None
    notes: Optional[str] = None
    public_slug: Optional[str] = None
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime
    schedule: List[ScheduleItemRead] = Field(default_factory=list)
    materials: List[MaterialRead] = Field(default_factory=list)
    packing_checklist: List[PackingItemRead] = Field(default_factory=list)
    setlist_structured: List[SetlistSectionRead] = Field(default_factory=list)


class GigPackRead(GigPackBase):
    owner_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    internal_notes: Optional[str] = None
    payment_notes: Optional[str] = None
    lineup: List[LineupMemberRead] = Field(default_factory=list)


class PublicGigPackRead(GigPackBase):
    lineup: List[PublicLineupMemberRead] = Field(default_factory=list)


class NotificationRead(BaseModel):
    id: UUID
    type: str
    title: str
    message: Optional[str] = None
    link: Optional[str] = None
    gig_id: Optional[UUID] = None
    gig_role_id: Optional[UUID] = None
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime] = None


class NotificationCountRead(BaseModel):
    count: int


class InvitationResponse(CamelModel):
    status: Literal["accepted", "declined"]


class GigRoleStatusRead(CamelModel):
    gig_role_id: UUID
    gig_id: UUID
    invitation_status: InvitationStatusValue
    responded_at: Optional[datetime] = None
