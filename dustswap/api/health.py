from fastapi import APIRouter
from typing import Dict, Any

from ..config import settings

router = APIRouter()


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """Configuration readiness of the upstream dependencies"""

    checks = {
        "zeroex_api_key": settings.has_zeroex_key,
        "rpc_url": bool(settings.resolved_rpc_url),
        "wallet_rpc_url": bool(settings.wallet_rpc_url),
        "fee_recipient": settings.has_fee_recipient,
        "notifications": bool(settings.notification_webhook_url),
    }

    # Quoting needs the 0x key, approvals need chain reads
    ready = checks["zeroex_api_key"] and checks["rpc_url"]

    return {
        "status": "healthy" if ready else "degraded",
        "chain_id": settings.chain_id,
        "checks": checks,
    }
