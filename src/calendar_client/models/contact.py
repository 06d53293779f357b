"""Address book and contact models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class AddressBook(BaseModel):
    """Address book metadata (the server uses capitalised keys)."""

    id: str = Field(validation_alias="ID")
    uuid: Optional[str] = Field(default=None, validation_alias="UUID")
    name: str = Field(default="", validation_alias="Name")
    description: Optional[str] = Field(default=None, validation_alias="Description")

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)


class ContactValue(BaseModel):
    """Typed value such as an email, phone number or URL."""

    type: str = ""
    value: str
    primary: bool = False


class ContactAddress(BaseModel):
    """Postal address."""

    type: str = ""
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class Contact(BaseModel):
    """Contact card."""

    id: str
    addressbook_id: str
    uid: str = ""
    formatted_name: str = ""
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    nickname: Optional[str] = None
    organization: Optional[str] = None
    title: Optional[str] = None
    emails: list[ContactValue] = Field(default_factory=list)
    phones: list[ContactValue] = Field(default_factory=list)
    addresses: list[ContactAddress] = Field(default_factory=list)
    urls: list[ContactValue] = Field(default_factory=list)
    birthday: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("id", "addressbook_id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)

    @field_validator("emails", "phones", "addresses", "urls", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []

    @property
    def primary_email(self) -> str:
        for email in self.emails:
            if email.primary:
                return email.value
        return self.emails[0].value if self.emails else ""
