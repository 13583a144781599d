from fastapi import APIRouter, Depends, HTTPException, Query, status

from bookbridge.geocoding import GeocodingError, ReverseGeocoder, get_geocoder
from bookbridge import schemas

router = APIRouter(prefix="/geocode", tags=["geocoding"])


@router.get("/reverse", response_model=schemas.GeocodeResult)
async def reverse_geocode(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    geocoder: ReverseGeocoder = Depends(get_geocoder),
):
    """
    Turn coordinates into a short address for the donation form.

    Raises:
        HTTPException: 502 when no provider could resolve the coordinates
    """
    try:
        address = await geocoder.reverse(lat, lon)
    except GeocodingError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return {"latitude": lat, "longitude": lon, "address": address}
