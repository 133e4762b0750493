from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health():
	return {"ok": True, "ts": datetime.now(timezone.utc).isoformat()}
