# core/validation.py
from __future__ import annotations
"""
Input models shared by the web console, the JSON API and the CLI.

Every form is validated here before any store call; pydantic errors are
flattened into a single ValidationError message for the operator.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from core.models import STATUSES, SCORE_MIN, SCORE_MAX

MIN_PASSWORD_LENGTH = 6


class StatusUpdateIn(BaseModel):
    verification_status: str
    score: float = Field(ge=SCORE_MIN, le=SCORE_MAX)
    remarks: str = ""

    @field_validator("verification_status")
    @classmethod
    def _status(cls, v: str) -> str:
        s = (v or "").strip().upper()
        if s not in STATUSES:
            raise ValueError(f"status must be one of {', '.join(STATUSES)}")
        return s

    @field_validator("remarks")
    @classmethod
    def _remarks(cls, v: str) -> str:
        return (v or "").strip()


class RegistrationIn(BaseModel):
    display_name: str = Field(min_length=1, max_length=120)
    email: str
    password: str
    confirm_password: str
    phone: str = ""
    admin_code: str = ""

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if "@" not in v or " " in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("invalid email address")
        return v

    @model_validator(mode="after")
    def _passwords(self) -> "RegistrationIn":
        check_new_password(self.password, self.confirm_password)
        return self


class PasswordChangeIn(BaseModel):
    current: str
    new: str
    confirm: str

    @model_validator(mode="after")
    def _passwords(self) -> "PasswordChangeIn":
        check_new_password(self.new, self.confirm, label="New passwords")
        return self


class ProfileUpdateIn(BaseModel):
    display_name: str = Field(default="", max_length=120)
    phone: str = Field(default="", max_length=40)
    photo_url: str = Field(default="", max_length=2048)


class LoginIn(BaseModel):
    email: str
    password: str


def check_new_password(password: str, confirm: str, *, label: str = "Passwords",
                       min_length: int = MIN_PASSWORD_LENGTH) -> None:
    if password != confirm:
        raise ValueError(f"{label} do not match")
    if len(password or "") < min_length:
        raise ValueError(f"Password must be at least {min_length} characters")


def _first_message(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
    msg = str(err.get("msg", "invalid input"))
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return f"{loc}: {msg}" if loc else msg


def parse(model: type, data: dict):
    """Instantiate `model` from form data, raising the console ValidationError."""
    try:
        return model(**data)
    except PydanticValidationError as ex:
        raise ValidationError(_first_message(ex)) from ex
