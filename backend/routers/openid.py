# routers/openid.py — Configured OpenID Connect providers
from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/v1/auth/openid", tags=["Authentication"])


@router.get("/providers")
async def list_providers(request: Request):
    """Providers the frontend may offer for login. Client secrets are never included."""
    cache = request.app.state.openid_providers
    providers = await cache.ensure_providers_loaded()
    return {"enabled": cache.enabled, "providers": [p.model_dump() for p in providers]}
