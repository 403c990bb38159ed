from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_CATEGORY = "PERSONAL"
SYSTEM_USER_ID = -1


class Category(str, Enum):
    PROFESSIONAL = "PROFESSIONAL"
    PERSONAL = "PERSONAL"
    HEALTH = "HEALTH"
    EDUCATION = "EDUCATION"
    SOCIAL = "SOCIAL"
    FINANCE = "FINANCE"
    HOLIDAY = "HOLIDAY"


CATEGORY_DETAILS: dict[Category, tuple[str, str]] = {
    Category.PROFESSIONAL: ("Professional & Work", "#F44336"),
    Category.PERSONAL: ("Personal & Lifestyle", "#FF9800"),
    Category.HEALTH: ("Health", "#FFEB3B"),
    Category.EDUCATION: ("Education", "#4CAF50"),
    Category.SOCIAL: ("Social & Entertainment", "#2196F3"),
    Category.FINANCE: ("Finance", "#3F51B5"),
    Category.HOLIDAY: ("Holiday & Events", "#9C27B0"),
}


class RecurrenceInterval(str, Enum):
    daily = "1d"
    weekly = "1w"
    monthly = "1m"
    yearly = "1y"


def _normalize_interval(value: Optional[str]) -> str:
    v = (value or "").strip()
    # older clients send the literal "None" for "no recurrence"
    return "" if v == "None" else v


# ── Stored records ────────────────────────────────────────────


class Event(BaseModel):
    id: int = 0
    userId: int = 0
    title: str = ""
    description: str = ""
    startDateTime: Optional[datetime] = None
    endDateTime: Optional[datetime] = None
    category: str = DEFAULT_CATEGORY
    # recurrence inputs; persisted in recurrent.csv, never in events.csv
    recurrentInterval: str = ""
    recurrentTimes: str = ""
    recurrentEndDate: str = ""


class RecurrenceRule(BaseModel):
    eventId: int = 0
    recurrentInterval: str = ""
    recurrentTimes: str = ""
    recurrentEndDate: str = ""


class AppUser(BaseModel):
    id: int = 0
    name: str = ""
    email: str = ""
    password: str = ""


# ── Errors ────────────────────────────────────────────────────


class ApiErrorDetail(BaseModel):
    field: str
    message: str


class ApiErrorPayload(BaseModel):
    code: str
    message: str
    details: list[ApiErrorDetail] = Field(default_factory=list)


class ApiErrorResponse(BaseModel):
    error: ApiErrorPayload


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: str


class MessageResponse(BaseModel):
    success: bool
    message: str


class CategoryResponse(BaseModel):
    id: str
    name: str
    colorHex: str


# ── Events ────────────────────────────────────────────────────


class EventPayload(BaseModel):
    userId: int
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    startDateTime: datetime
    endDateTime: datetime
    category: Optional[str] = None
    recurrentInterval: Optional[str] = None
    recurrentTimes: Optional[str] = None
    recurrentEndDate: Optional[str] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Event title is required")
        return value

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return value.strip().upper() or None

    @field_validator("recurrentInterval")
    @classmethod
    def validate_interval(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_interval(value)

    @model_validator(mode="after")
    def validate_period(self) -> "EventPayload":
        if self.endDateTime < self.startDateTime:
            raise ValueError("endDateTime must be on or after startDateTime")
        return self

    def to_event(self) -> Event:
        return Event(
            userId=self.userId,
            title=self.title,
            description=self.description or "",
            startDateTime=self.startDateTime,
            endDateTime=self.endDateTime,
            category=self.category or DEFAULT_CATEGORY,
            recurrentInterval=self.recurrentInterval or "",
            recurrentTimes=(self.recurrentTimes or "").strip(),
            recurrentEndDate=(self.recurrentEndDate or "").strip(),
        )


class EventResponse(BaseModel):
    id: int
    userId: int
    title: str
    description: str
    startDateTime: datetime
    endDateTime: datetime
    category: str


class EventMutationResponse(MessageResponse):
    event: Optional[EventResponse] = None
    events: list[EventResponse] = Field(default_factory=list)


# ── Recurrence rules ──────────────────────────────────────────


class RecurrenceRulePayload(BaseModel):
    eventId: Optional[int] = None
    recurrentInterval: Optional[str] = None
    recurrentTimes: Optional[str] = None
    recurrentEndDate: Optional[str] = None

    @field_validator("recurrentInterval")
    @classmethod
    def validate_interval(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_interval(value)

    def to_rule(self, event_id: Optional[int] = None) -> RecurrenceRule:
        return RecurrenceRule(
            eventId=event_id if event_id is not None else (self.eventId or 0),
            recurrentInterval=self.recurrentInterval or "",
            recurrentTimes=(self.recurrentTimes or "").strip(),
            recurrentEndDate=(self.recurrentEndDate or "").strip(),
        )


class RuleMutationResponse(MessageResponse):
    rule: Optional[RecurrenceRule] = None


# ── Users ─────────────────────────────────────────────────────


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        # exact match semantics: no case folding
        v = value.strip()
        if not v:
            raise ValueError("Email is required")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required")
        return value


class LoginRequest(BaseModel):
    email: str
    password: str


class UserUpdate(RegisterRequest):
    pass


class UserResponse(BaseModel):
    id: int
    name: str
    email: str


class UserMutationResponse(MessageResponse):
    user: Optional[UserResponse] = None


class EmailCheckResponse(BaseModel):
    exists: bool


# ── Backup ────────────────────────────────────────────────────


class BackupCreateRequest(BaseModel):
    backupName: Optional[str] = None


class BackupRestoreRequest(BaseModel):
    backupName: str = Field(min_length=1)
    append: bool = False


class BackupInfo(BaseModel):
    name: str
    size: int
    lastModified: int
    path: str


class BackupCreateResponse(MessageResponse):
    backupPath: str
    backupName: str


class BackupRestoreResponse(MessageResponse):
    append: bool
    counts: dict[str, int]


class BackupListResponse(BaseModel):
    success: bool = True
    backups: list[BackupInfo]
