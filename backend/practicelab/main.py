import logging

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse

from .db import init_db
from .errors import register_error_handlers
from .providers import close_providers, sync_case_index
from .routers import auth, cases, evaluate, health
from .routers.auth import verification_enabled
from .settings import settings

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Case Practice Lab API")
register_error_handlers(app)
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(cases.router)
app.include_router(evaluate.router)


@app.get("/", include_in_schema=False)
async def redirect_root_to_docs():
	return RedirectResponse(url="/docs")


@app.get("/info")
def root():
	return {
		"status": "ok",
		"llm_provider": settings.llm_provider,
		"llm_json_mode": settings.llm_json_mode,
		"embed_model": settings.embed_model,
		"vector_index": "persistent" if settings.vector_dir else "in-memory",
		"novelty_threshold": settings.novelty_threshold,
		"generation_max_tries": settings.generation_max_tries,
		"generation_lock_enabled": settings.generation_lock_enabled,
		"token_verification": verification_enabled(),
		"fallback_configured": bool(settings.openrouter_api_key),
	}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema, then index any stored cases the vector index is missing
	init_db()
	await run_in_threadpool(sync_case_index)
	logger.info("Case Practice Lab ready (provider=%s, token verification=%s)", settings.llm_provider, verification_enabled())


@app.on_event("shutdown")
async def shutdown_event():
	await close_providers()
