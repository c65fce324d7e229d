"""Pydantic request/response schemas for the address book API."""

from pydantic import BaseModel, ConfigDict, Field

from identity.addresses import AddressLabel


class AddAddressRequest(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: str | None = None
    city: str = Field(min_length=1, max_length=100)
    state: str | None = None
    postal_code: str = Field(min_length=1, max_length=20)
    country: str = Field(min_length=2, max_length=100)
    phone: str | None = None
    label: AddressLabel = AddressLabel.HOME
    is_default: bool = False

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "full_name": "Jane Doe",
                    "address_line1": "123 Elm Street",
                    "city": "Springfield",
                    "state": "IL",
                    "postal_code": "62701",
                    "country": "US",
                }
            ]
        }
    }


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    full_name: str
    phone: str | None = None
    address_line1: str
    address_line2: str | None = None
    city: str
    state: str | None = None
    postal_code: str
    country: str
    is_default: bool
