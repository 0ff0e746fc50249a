from datetime import datetime
from typing import Annotated, Optional
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, constr
from pydantic.alias_generators import to_camel
from pydantic.networks import validate_email

# Nom obligatoire et non vide
Name = constr(min_length=1)


def check_email(value: str) -> str:
    """Same check as EmailStr, but the address is kept exactly as sent.

    The "Name <address>" form is refused.
    """
    if "<" in value or ">" in value:
        raise ValueError("value is not a valid email address: display names are not allowed")
    validate_email(value)
    return value


Email = Annotated[str, AfterValidator(check_email), Field(json_schema_extra={"format": "email"})]


class CamelModel(BaseModel):
    # camelCase sur le fil, snake_case en Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserCreate(CamelModel):
    email: Email = Field(examples=["john.doe@example.com"], description="User email address")
    first_name: Name = Field(examples=["John"], description="User first name")
    last_name: Name = Field(examples=["Doe"], description="User last name")


class UserUpdate(CamelModel):
    """Partial update: every field is independently optional.

    A field left out of the payload (or sent as null) is not validated and
    leaves the stored value untouched.
    """

    email: Optional[Email] = Field(default=None, examples=["john.doe@example.com"], description="User email address")
    first_name: Optional[Name] = Field(default=None, examples=["John"], description="User first name")
    last_name: Optional[Name] = Field(default=None, examples=["Doe"], description="User last name")


class UserResponse(CamelModel):
    id: str = Field(examples=["1"], description="User ID")
    email: str
    first_name: str
    last_name: str
    created_at: datetime = Field(description="User creation timestamp")
    updated_at: datetime = Field(description="User last update timestamp")

    # Construit depuis models.User
    model_config = ConfigDict(from_attributes=True)


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str
    version: str
