"""
skincase.api.validation — Declarative Request Rule Sets
========================================================

Each rule set is a pydantic model; :func:`validate` turns one into a
FastAPI dependency reading the JSON body, the query string or the path
parameters.  Any failure becomes HTTP 400::

    {"error": "validation_failed",
     "message": "The submitted data is not valid.",
     "details": [{"location": "body", "field": "password", "message": "..."}]}

Messages are raised through ``PydanticCustomError`` so clients get the
rule's wording rather than pydantic's defaults.
"""

from __future__ import annotations

import re
from typing import Any, Literal

from email_validator import EmailNotValidError, validate_email
from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from skincase.api.errors import validation_details
from skincase.constants import MAX_XCOINS_AMOUNT
from skincase.database.models import AchievementCategory, AchievementRarity, Track
from skincase.errors import ValidationFailed

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]")
OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

_GMAIL_DOMAINS = frozenset({"gmail.com", "googlemail.com"})


def _fail(kind: str, message: str) -> PydanticCustomError:
    return PydanticCustomError(kind, message)


def _int_between(value: Any, low: int, high: int | None, kind: str, message: str) -> int:
    """Coerce *value* to an int within [low, high] or fail with *message*."""
    if isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
        value = int(value)
    if not isinstance(value, int) or isinstance(value, bool):
        raise _fail(kind, message)
    if value < low or (high is not None and value > high):
        raise _fail(kind, message)
    return value


# ---------------------------------------------------------------------------
# Field rules
# ---------------------------------------------------------------------------
def normalize_email(address: str) -> str:
    """Lower-case; for Gmail also drop dots and ``+tag`` and unify the domain."""
    local, _, domain = address.strip().lower().rpartition("@")
    if domain in _GMAIL_DOMAINS:
        local = local.split("+", 1)[0].replace(".", "")
        domain = "gmail.com"
    return f"{local}@{domain}"


def check_email(value: str) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise _fail("email", "Please enter a valid email address")
    return normalize_email(value)


def check_username(value: str) -> str:
    if not 3 <= len(value) <= 50:
        raise _fail("username_length", "Username must be between 3 and 50 characters")
    if not USERNAME_RE.match(value):
        raise _fail(
            "username_format",
            "Username may only contain letters, digits, hyphens and underscores",
        )
    return value


def check_password(value: str) -> str:
    if len(value) < 8:
        raise _fail("password_length", "Password must be at least 8 characters long")
    if not PASSWORD_RE.match(value):
        raise _fail(
            "password_strength",
            "Password must contain at least one lowercase letter, one uppercase "
            "letter, one digit and one special character (@$!%*?&)",
        )
    return value


def is_object_id(value: str) -> bool:
    return bool(OBJECT_ID_RE.match(value))


# ---------------------------------------------------------------------------
# Rule sets
# ---------------------------------------------------------------------------
class RegisterRules(BaseModel):
    username: str
    email: str
    password: str

    _username = field_validator("username")(check_username)
    _email = field_validator("email")(check_email)
    _password = field_validator("password")(check_password)


class LoginRules(BaseModel):
    email: str
    password: str

    _email = field_validator("email")(check_email)

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        if not value:
            raise _fail("password_required", "Password is required")
        return value


class ObjectIdRules(BaseModel):
    user_id: str

    @field_validator("user_id")
    @classmethod
    def _object_id(cls, value: str) -> str:
        if not is_object_id(value):
            raise _fail("object_id", "Invalid ID")
        return value


class PaginationRules(BaseModel):
    page: int = 1
    limit: int = 20

    @field_validator("page", mode="before")
    @classmethod
    def _page(cls, value: Any) -> int:
        return _int_between(value, 1, None, "page", "Page number must be a positive integer")

    @field_validator("limit", mode="before")
    @classmethod
    def _limit(cls, value: Any) -> int:
        return _int_between(value, 1, 100, "limit", "Limit must be an integer between 1 and 100")


class XcoinsRules(BaseModel):
    amount: int
    reason: str = Field("", max_length=255)

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> int:
        return _int_between(
            value, 1, MAX_XCOINS_AMOUNT, "amount",
            "Amount must be an integer between 1 and 1,000,000",
        )


class CaseRules(BaseModel):
    name: str
    description: str
    price: int

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        if not 3 <= len(value) <= 100:
            raise _fail("case_name", "Case name must be between 3 and 100 characters")
        return value.strip()

    @field_validator("description")
    @classmethod
    def _description(cls, value: str) -> str:
        if not 10 <= len(value) <= 500:
            raise _fail("case_description", "Description must be between 10 and 500 characters")
        return value.strip()

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, value: Any) -> int:
        return _int_between(value, 1, 100_000, "price", "Price must be an integer between 1 and 100,000")


class ServerRules(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str | None = None
    max_players: int = Field(alias="maxPlayers")

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        if not 3 <= len(value) <= 100:
            raise _fail("server_name", "Server name must be between 3 and 100 characters")
        return value.strip()

    @field_validator("description")
    @classmethod
    def _description(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if len(value) > 500:
            raise _fail("server_description", "Description cannot exceed 500 characters")
        return value.strip()

    @field_validator("max_players", mode="before")
    @classmethod
    def _max_players(cls, value: Any) -> int:
        return _int_between(value, 2, 64, "max_players", "Maximum players must be between 2 and 64")


class ClaimRules(BaseModel):
    level: int
    track: Track = Track.FREE

    @field_validator("level", mode="before")
    @classmethod
    def _level(cls, value: Any) -> int:
        return _int_between(value, 1, None, "level", "Level must be a positive integer")

    @field_validator("track", mode="before")
    @classmethod
    def _track(cls, value: Any) -> Any:
        if not isinstance(value, str) or value not in {t.value for t in Track}:
            raise _fail("track", "Track must be 'free' or 'premium'")
        return value


class XpGrantRules(BaseModel):
    amount: int
    reason: str = Field("", max_length=255)

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> int:
        return _int_between(
            value, 1, 1_000_000, "xp_amount",
            "XP amount must be an integer between 1 and 1,000,000",
        )


class BanRules(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: str
    duration_hours: int | None = Field(None, alias="durationHours")

    @field_validator("reason")
    @classmethod
    def _reason(cls, value: str) -> str:
        value = value.strip()
        if not 1 <= len(value) <= 500:
            raise _fail("ban_reason", "Ban reason must be between 1 and 500 characters")
        return value

    @field_validator("duration_hours", mode="before")
    @classmethod
    def _duration(cls, value: Any) -> int | None:
        if value is None:
            return None
        return _int_between(
            value, 1, 24 * 365, "ban_duration",
            "Ban duration must be between 1 hour and 1 year",
        )


class MissionMetricsRules(BaseModel):
    metrics: dict[str, int]

    @field_validator("metrics")
    @classmethod
    def _metrics(cls, value: dict[str, int]) -> dict[str, int]:
        if not value or len(value) > 20:
            raise _fail("metrics", "Report between 1 and 20 metrics")
        for name, count in value.items():
            if not name or len(name) > 64 or count < 0:
                raise _fail("metrics", "Metric names must be 1-64 characters with non-negative counts")
        return value


class AchievementFilterRules(BaseModel):
    category: AchievementCategory | None = None
    rarity: AchievementRarity | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        if not isinstance(value, str) or value not in {c.value for c in AchievementCategory}:
            raise _fail("category", "Unknown achievement category")
        return value

    @field_validator("rarity", mode="before")
    @classmethod
    def _rarity(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        if not isinstance(value, str) or value not in {r.value for r in AchievementRarity}:
            raise _fail("rarity", "Unknown achievement rarity")
        return value


# ---------------------------------------------------------------------------
# Dependency factory
# ---------------------------------------------------------------------------
Source = Literal["body", "query", "path"]


def validate(rules: type[BaseModel], source: Source = "body"):
    """Dependency validating *source* against *rules*; returns the model.

    Usage::

        @router.post("/login")
        def login(data: LoginRules = Depends(validate(LoginRules))): ...
    """

    async def dependency(request: Request) -> BaseModel:
        match source:
            case "body":
                try:
                    data = await request.json()
                except (ValueError, RecursionError):
                    data = None
            case "query":
                data = dict(request.query_params)
            case _:
                data = dict(request.path_params)

        if not isinstance(data, dict):
            raise ValidationFailed([{
                "location": source,
                "field": "",
                "message": "Expected a JSON object",
            }])
        try:
            return rules.model_validate(data)
        except ValidationError as exc:
            raise ValidationFailed(validation_details(exc.errors(), source))

    return dependency
