from datetime import date
from typing import Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from app.admin import AdminService
from app.config import Settings, get_settings
from app.db.database import SessionLocal
from app.db.repository import QueryRepository, UserRepository
from app.errors import AccessDenied, NotFound, QuotaExceeded, UpstreamUnavailable, ValidationError
from app.export import HistoryExporter
from app.logging_config import get_logger, log_security_event, setup_logging
from app.rag.llm_client import LLMClient
from app.rag.orchestrator import Orchestrator
from app.retrieval.bibliographic import BibliographicSearchClient, build_backend
from app.retrieval.pipeline import build_reference_search
from app.usage.guest import GuestThrottle
from app.usage.local_store import InMemoryLocalStore, LocalStore, NamespacedStore
from app.usage.quota import QuotaLedger, QuotaPolicy

settings = get_settings()

# Configure logging on startup
setup_logging(
    level=settings.log_level,
    log_file=settings.log_file,
    security_log_file=settings.security_log_file,
)
logger = get_logger(__name__)


class Services:
    """Wires repositories, clients and services for one process."""

    def __init__(
        self,
        settings: Settings,
        session_factory=SessionLocal,
        llm=None,
        backend=None,
        store: Optional[LocalStore] = None,
    ):
        self.settings = settings
        self.queries = QueryRepository(session_factory)
        self.users = UserRepository(session_factory)
        self.ledger = QuotaLedger(self.queries, QuotaPolicy(settings.quota_policy), self.users)
        self.llm = llm or LLMClient(settings)
        self.store = store or InMemoryLocalStore()

        search_client = BibliographicSearchClient(backend or build_backend(settings))
        self.orchestrator = Orchestrator(
            llm=self.llm,
            queries=self.queries,
            ledger=self.ledger,
            reference_search=build_reference_search(self.llm, search_client, settings.auxiliary_model),
            settings=settings,
            store=self.store,
        )
        self.admin = AdminService(self.users, self.queries, self.ledger, settings.allowed_promotion_emails)
        self.exporter = HistoryExporter(self.queries, self.users)


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = Services(settings)
    return _services


app = FastAPI(title="Salustia API", version="0.1.0")

# Configure CORS for the web front end
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["*"],
    allow_credentials=bool(settings.allowed_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping

@app.exception_handler(QuotaExceeded)
async def quota_exceeded_handler(request: Request, exc: QuotaExceeded):
    return JSONResponse(
        status_code=429,
        content={"error": str(exc), "window": exc.window, "ceiling": exc.ceiling},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(UpstreamUnavailable)
async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailable):
    logger.error(f"Upstream failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"error": "Error al consultar el modelo."})


@app.exception_handler(AccessDenied)
async def access_denied_handler(request: Request, exc: AccessDenied):
    return JSONResponse(status_code=403, content={"error": str(exc)})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"error": str(exc)})


# Identity

class Identity(BaseModel):
    user_id: Optional[str] = None
    role: Optional[str] = None
    guest_id: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


def get_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_guest_id: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> Identity:
    """Resolve the caller from gateway headers; unknown users are provisioned as free."""
    if not x_user_id:
        return Identity(guest_id=x_guest_id or "anonymous")

    user = services.users.get(x_user_id)
    if user is None:
        logger.info(f"Provisioning user {x_user_id} with role free")
        user = services.users.create(x_user_id, email=None, role="free")
    if not user["enabled"]:
        log_security_event("disabled_user_access", {"user_id": x_user_id})
        raise AccessDenied("Tu cuenta está deshabilitada.")
    return Identity(user_id=user["id"], role=user["role"])


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if identity.role != "admin":
        log_security_event("admin_access_denied", {"user_id": identity.user_id})
        raise AccessDenied("Se requiere rol de administrador.")
    return identity


def client_store(services: Services, identity: Identity) -> LocalStore:
    """Per-client slice of the shared local store."""
    ttl = services.settings.local_state_ttl_seconds
    if identity.is_guest:
        return NamespacedStore(services.store, f"guest:{identity.guest_id}", default_ttl=ttl)
    return NamespacedStore(services.store, f"user:{identity.user_id}", owner=identity.user_id, default_ttl=ttl)


# Request / response models

class AskRequest(BaseModel):
    prompt: str
    use_search: bool = True
    include_enrichment: bool = True


class AskResponse(BaseModel):
    prompt: str
    response: str
    rendered_html: str
    term_references: List[Dict[str, str]]
    references: List[dict]
    keywords: List[str]
    translated_query: Optional[str] = None
    search_type: Optional[str] = None
    selected_keyword: Optional[str] = None
    search_status: str
    query_id: Optional[str] = None
    persisted: bool
    summary: Optional[str] = None
    summary_html: Optional[str] = None
    suggestions: List[str] = []
    generation_time_ms: float


class ExportRequest(BaseModel):
    from_date: date
    to_date: date
    format: str = "csv"


class CreateUserRequest(BaseModel):
    email: str
    role: str = "free"


class UpdateUserRequest(BaseModel):
    role: Optional[str] = None
    enabled: Optional[bool] = None


class PromoteRequest(BaseModel):
    email: str


@app.on_event("startup")
async def startup_event():
    logger.info("Starting Salustia API")
    logger.info(f"Using local LLM: {settings.use_local_llm}, bibliographic backend: {settings.biblio_backend}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Salustia API")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "Salustia API is running"}


@app.post("/ask", response_model=AskResponse)
async def ask(
    request: AskRequest,
    background_tasks: BackgroundTasks,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    """Answer a clinical question, with PubMed context and optional enrichment."""
    logger.info(f"Received question: {request.prompt[:100]}...")

    orchestrator = services.orchestrator
    result = await orchestrator.ask(
        request.prompt,
        user_id=identity.user_id,
        role=identity.role,
        use_search=request.use_search,
        store=client_store(services, identity),
    )

    summary = summary_html = None
    suggestions: List[str] = []
    if request.include_enrichment:
        enrichment = await orchestrator.enrich(result)
        summary, summary_html, suggestions = enrichment.summary, enrichment.summary_html, enrichment.suggestions
    else:
        background_tasks.add_task(orchestrator.enrich, result)

    context = result.search_context
    return AskResponse(
        prompt=result.prompt,
        response=result.response,
        rendered_html=result.rendered_html,
        term_references=result.term_references,
        references=context.articles_snapshot() if context else [],
        keywords=list(context.keywords) if context else [],
        translated_query=context.translated_query if context else None,
        search_type=context.search_type if context else None,
        selected_keyword=context.selected_keyword if context else None,
        search_status=result.search_status,
        query_id=result.query_id,
        persisted=result.persisted,
        summary=summary,
        summary_html=summary_html,
        suggestions=suggestions,
        generation_time_ms=result.generation_time_ms,
    )


@app.get("/usage")
async def get_usage(identity: Identity = Depends(get_identity), services: Services = Depends(get_services)):
    """Current counters and ceilings for the caller."""
    if identity.is_guest:
        throttle = GuestThrottle(client_store(services, identity), limit=services.settings.guest_query_limit)
        return {"guest": True, "used": throttle.used(), "remaining": throttle.remaining(), "limit": throttle.limit}

    counters = services.ledger.usage(identity.user_id)
    daily_limit, monthly_limit = services.ledger.policy.ceilings(identity.role)
    return {
        "guest": False,
        "role": identity.role,
        "daily_count": counters.daily_count,
        "monthly_count": counters.monthly_count,
        "daily_limit": daily_limit,
        "monthly_limit": monthly_limit,
    }


@app.get("/queries/{query_id}")
async def get_query(query_id: str, identity: Identity = Depends(get_identity), services: Services = Depends(get_services)):
    record = services.queries.get_query(query_id)
    if record is None or (record["user_id"] != identity.user_id and identity.role != "admin"):
        raise NotFound("Consulta no encontrada")
    return record


@app.post("/export")
async def export_history(
    request: ExportRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    if identity.is_guest:
        raise AccessDenied("La exportación requiere una cuenta registrada.")
    export = services.exporter.export_history(identity.user_id, request.from_date, request.to_date, request.format)
    return Response(
        content=export.content,
        media_type=export.content_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


# Admin

@app.get("/admin/users")
async def list_users(admin: Identity = Depends(require_admin), services: Services = Depends(get_services)):
    return services.admin.list_users()


@app.post("/admin/users", status_code=201)
async def create_user(
    request: CreateUserRequest,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.admin.create_user(request.email, request.role)


@app.patch("/admin/users/{user_id}")
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    if request.role is None and request.enabled is None:
        raise ValidationError("Nada que actualizar")
    user = None
    if request.role is not None:
        user = services.admin.set_role(user_id, request.role)
    if request.enabled is not None:
        user = services.admin.set_enabled(user_id, request.enabled)
    return user


@app.delete("/admin/users/{user_id}")
async def delete_user(
    user_id: str,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    removed = services.admin.delete_user(user_id)
    return {"deleted": user_id, "queries_removed": removed}


@app.get("/admin/stats")
async def admin_stats(admin: Identity = Depends(require_admin), services: Services = Depends(get_services)):
    return services.admin.stats()


@app.post("/admin/promote")
async def promote_admin(request: PromoteRequest, services: Services = Depends(get_services)):
    """Promote an allow-listed email to admin (ALLOWED_PROMOTION_EMAILS)."""
    user = services.admin.promote_to_admin(request.email)
    return {"success": True, "message": f"Usuario {request.email} promovido a administrador", "user": user}


@app.get("/")
async def root():
    return {"message": "Welcome to Salustia API", "docs": "/docs"}
