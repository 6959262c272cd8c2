from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

PRIMARY = "primary"
SECONDARY = "secondary"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ContactBase(BaseModel):
    id: int
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime
    deletedAt: Optional[datetime] = None

    @field_validator("createdAt", "updatedAt", "deletedAt")
    @classmethod
    def normalize_timestamps(cls, value):
        return as_utc(value)

    @property
    def seniority(self):
        """Sort key deciding which primary survives a merge."""
        return (self.createdAt, self.id)


class PrimaryContact(ContactBase):
    linkPrecedence: Literal["primary"] = PRIMARY
    linkedId: None = None


class SecondaryContact(ContactBase):
    linkPrecedence: Literal["secondary"] = SECONDARY
    linkedId: int


Contact = Annotated[Union[PrimaryContact, SecondaryContact], Field(discriminator="linkPrecedence")]

contact_adapter = TypeAdapter(Contact)


def _phone_to_str(value):
    # phone numbers are often posted as JSON numbers
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class IdentifyRequest(BaseModel):
    email: Optional[str] = None
    phoneNumber: Optional[str] = None

    @field_validator("phoneNumber", mode="before")
    @classmethod
    def coerce_phone(cls, value):
        return _phone_to_str(value)


class ContactResponse(BaseModel):
    primaryContactId: int
    emails: List[str]
    phoneNumbers: List[str]
    secondaryContactIds: List[int]


class FinalResponse(BaseModel):
    contact: ContactResponse


class AddContactRequest(BaseModel):
    id: Optional[int] = None
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    linkedId: Optional[int] = None
    linkPrecedence: Literal["primary", "secondary"] = PRIMARY
    createdAt: Optional[datetime] = None

    @field_validator("phoneNumber", mode="before")
    @classmethod
    def coerce_phone(cls, value):
        return _phone_to_str(value)

    @model_validator(mode="after")
    def check_link(self):
        if self.linkPrecedence == SECONDARY and self.linkedId is None:
            raise ValueError("a secondary contact needs linkedId")
        if self.linkPrecedence == PRIMARY and self.linkedId is not None:
            raise ValueError("a primary contact cannot have linkedId")
        return self
