from fastapi import APIRouter, Path
from fastapi.responses import JSONResponse, Response

from app.services import owm_client

router = APIRouter(prefix="/radar", tags=["radar"])


@router.get("/{layer}/{z}/{x}/{y}")
async def get_radar_tile(
    layer: str,
    z: int = Path(..., ge=0, le=18),
    x: int = Path(..., ge=0),
    y: int = Path(..., ge=0),
):
    """Proxy an OpenWeatherMap overlay tile so the API key stays server-side."""
    if layer not in owm_client.RADAR_LAYERS:
        return JSONResponse(status_code=404, content={"error": "Couche radar inconnue", "layer": layer})
    content = await owm_client.fetch_tile(layer, z, x, y)
    return Response(
        content=content,
        media_type="image/png",
        headers={"Cache-Control": "public, max-age=600"},
    )
