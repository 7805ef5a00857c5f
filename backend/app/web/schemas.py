from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from backend.app.models.enums import GiveawayStatus, ParticipantStatus, SelectionMode


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class GiveawayCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = ""
    image_url: str | None = None
    prize_details: str = ""
    start_date: datetime | None = None
    end_date: datetime | None = None
    draft: bool = False
    max_extensions: int = 0
    invites_enabled: bool = True
    invite_cap: int | None = None
    invite_points_per_referral: int | None = None
    invite_points_for_invitee: int | None = None


class GiveawayUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    prize_details: str | None = None
    status: GiveawayStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    max_extensions: int | None = None
    invites_enabled: bool | None = None
    invite_cap: int | None = None
    invite_points_per_referral: int | None = None
    invite_points_for_invitee: int | None = None


class GiveawayOut(ORMModel):
    id: int
    slug: str
    title: str
    description: str
    image_url: str | None
    prize_details: str
    status: GiveawayStatus
    start_date: datetime | None
    end_date: datetime | None
    max_extensions: int
    extensions_used: int
    invites_enabled: bool
    invite_cap: int
    invite_points_per_referral: int
    invite_points_for_invitee: int
    winner_id: int | None
    winner_selection_mode: SelectionMode | None
    created_at: datetime
    updated_at: datetime


class ParticipantOut(ORMModel):
    id: int
    giveaway_id: int
    user_id: int
    status: ParticipantStatus
    points: int
    invite_code: str
    invite_count: int
    joined_at: datetime


class ParticipantRowOut(ParticipantOut):
    username: str | None = None
    display_name: str | None = None


class ParticipationStatusOut(ORMModel):
    joined: bool
    status: ParticipantStatus | None
    points: int
    invite_code: str | None
    invite_count: int
    completed_tasks: list[int]
    total_tasks: int
    required_tasks_completed: bool


class CountOut(BaseModel):
    count: int


class HistoryOut(BaseModel):
    giveaway: GiveawayOut
    status: ParticipantStatus
    points: int
    invite_count: int
    joined_at: datetime
    winner_name: str | None


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = ""
    type: str = "custom"
    points: int = Field(default=1, ge=0)
    required: bool = False
    min_duration_seconds: int | None = Field(default=None, ge=0)


class TaskUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    type: str | None = None
    points: int | None = Field(default=None, ge=0)
    required: bool | None = None
    min_duration_seconds: int | None = Field(default=None, ge=0)


class TaskOut(ORMModel):
    id: int
    giveaway_id: int
    type: str
    title: str
    description: str
    points: int
    required: bool
    min_duration_seconds: int | None
    is_retired: bool


class TaskRemovedOut(BaseModel):
    retired: bool


class InviteIn(BaseModel):
    invite_code: str = Field(min_length=1, max_length=64)


class InviteCreditOut(ORMModel):
    giveaway_id: int
    referrer_user_id: int
    referrer_points: int
    invite_count: int
    invitee_user_id: int
    invitee_points: int


class SupportIn(BaseModel):
    amount: Decimal
    donor_name: str = ""
    donor_email: str = ""
    is_anonymous: bool = False


class SupportOut(ORMModel):
    id: int
    giveaway_id: int
    amount: Decimal
    is_anonymous: bool
    created_at: datetime


class SupporterOut(ORMModel):
    id: int
    amount: Decimal
    display_name: str
    is_anonymous: bool
    created_at: datetime
    user_id: int | None = None
    donor_email: str | None = None


class SupportSummaryOut(BaseModel):
    total_amount: Decimal
    supporter_count: int
    supporters: list[SupporterOut]


class GiveawayDonationsOut(ORMModel):
    giveaway_id: int
    title: str
    slug: str
    total_amount: Decimal
    supporter_count: int


class DonationStatsOut(ORMModel):
    grand_total: Decimal
    grand_count: int
    per_giveaway: list[GiveawayDonationsOut]


class WinnerSelectIn(BaseModel):
    mode: SelectionMode = SelectionMode.SYSTEM_RANDOM
    winner_user_id: int | None = None


class WinnerResultOut(ORMModel):
    giveaway_id: int
    winner_id: int
    selection_mode: SelectionMode
    pool_size: int


class WinnerInfoOut(ORMModel):
    user_id: int
    username: str | None
    display_name: str | None
    selection_mode: SelectionMode | None


class ShippingIn(BaseModel):
    full_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    country: str = ""
    phone: str = ""


class ShippingOut(ORMModel):
    giveaway_id: int
    user_id: int
    full_name: str
    address: str
    city: str
    state: str
    pincode: str
    country: str
    phone: str
    updated_at: datetime


class InterestOut(ORMModel):
    interested: bool
    count: int
