from __future__ import annotations

from fastapi import APIRouter

from pollreport.api.deps import get_available_providers, get_default_provider
from pollreport.models.schemas import ProviderInfo, ProvidersResponse

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("", response_model=ProvidersResponse)
async def list_models():
    """List the generation providers a report can be written with."""
    providers = get_available_providers()
    return ProvidersResponse(
        default=get_default_provider(),
        models=[ProviderInfo(**p) for p in providers],
    )
