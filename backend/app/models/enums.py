from enum import Enum


class GiveawayStatus(str, Enum):
    draft = "draft"
    upcoming = "upcoming"
    active = "active"
    ended = "ended"
    winner_selected = "winner_selected"


class ParticipantStatus(str, Enum):
    joined = "joined"
    eligible = "eligible"
    winner = "winner"
    not_selected = "not_selected"


class SelectionMode(str, Enum):
    SYSTEM_RANDOM = "SYSTEM_RANDOM"
    ADMIN_RANDOM = "ADMIN_RANDOM"
