"""FastAPI endpoints for the customer address book."""

from fastapi import APIRouter, Depends

from identity.api.schemas import AddAddressRequest, AddressResponse
from shared.access import Actor
from shared.http import current_actor, get_services

router = APIRouter(prefix="/addresses", tags=["addresses"])


@router.get("", response_model=list[AddressResponse])
async def list_addresses(actor: Actor = Depends(current_actor), services=Depends(get_services)) -> list[AddressResponse]:
    addresses = await services.addresses.list_addresses(actor.id)
    return [AddressResponse.model_validate(address) for address in addresses]


@router.post("", status_code=201, response_model=AddressResponse)
async def add_address(
    body: AddAddressRequest, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> AddressResponse:
    address = await services.addresses.add_address(actor.id, **body.model_dump())
    return AddressResponse.model_validate(address)


@router.put("/{address_id}/default", response_model=AddressResponse)
async def set_default_address(
    address_id: str, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> AddressResponse:
    address = await services.addresses.set_default_address(actor.id, address_id)
    return AddressResponse.model_validate(address)
