"""
UPC Router - Barcode product lookup, counted against the monthly scan quota
"""
from fastapi import APIRouter, Depends, Query

from models import UPCLookupResponse, UPCProduct
from dependencies import get_current_user, get_upc_client
from routers.usage import enforce_usage_limit, track_feature_usage
from services.upc_lookup import UPCLookupClient, UPCServiceUnavailable, clean_upc
from utils.debug import Loggers
from utils.errors import (
    InvalidInputError, NotFoundError, ServiceUnavailableError, handle_unexpected_error,
)

router = APIRouter(prefix="/upc", tags=["UPC"])

UPC_FEATURE = "upc_scan"


@router.get("/lookup", response_model=UPCLookupResponse)
async def lookup_upc(
    upc: str = Query(..., description="UPC / EAN barcode"),
    user: dict = Depends(get_current_user),
    client: UPCLookupClient = Depends(get_upc_client)
):
    """
    Look up a product by barcode.

    The quota is checked before calling out, and the scan is only counted
    once a product was actually found.
    """
    code = clean_upc(upc)
    if not 8 <= len(code) <= 14:
        raise InvalidInputError("UPC must contain 8 to 14 digits", {"upc": upc})

    enforce_usage_limit(user, UPC_FEATURE)

    try:
        product = await client.lookup(code)
    except UPCServiceUnavailable as e:
        Loggers.services.error(f"UPC lookup unavailable: {e}", user_id=user["id"])
        raise ServiceUnavailableError("UPC lookup service") from e
    except Exception as e:
        handle_unexpected_error(e, "UPC lookup")

    if product is None:
        raise NotFoundError("Product", code)

    usage = await track_feature_usage(user, UPC_FEATURE)
    return UPCLookupResponse(product=UPCProduct(**product), usage=usage)
