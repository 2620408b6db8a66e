from fastapi import APIRouter, Depends

from ..errors import UpstreamError
from ..providers import get_store
from ..store import CaseStore

router = APIRouter(tags=["health"])


@router.get("/health")
def health(store: CaseStore = Depends(get_store)):
	try:
		result = store.ping()
	except UpstreamError as exc:
		return {"status": "degraded", "database": False, "detail": exc.detail}
	return {"status": "ok", "database": result["ok"], "has_cases": result["has_cases"]}
