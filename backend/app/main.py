from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
import logging
from typing import Any, AsyncIterator, Callable

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backend.services.excel_export import MileageExportService
from mileage_log.config import Settings, get_settings
from mileage_log.core import current_month, format_month_human
from mileage_log.db import apply_all_migrations, connect_sqlite
from mileage_log.errors import (
    AuthenticationError,
    CapacityExceeded,
    ConfigurationError,
    ConfirmationRequired,
    EntryNotFound,
    ExportError,
    InvalidMonthToken,
    LoadError,
    MutationError,
)
from mileage_log.identity import ClientInitResult, SupabaseAuthAdapter, create_backend_client
from mileage_log.models import EntryForm, Session
from mileage_log.presets import PRESET_TRIPS
from mileage_log.repositories import RestTravelEntryRepository, SqliteTravelEntryRepository, TravelEntryRepository
from mileage_log.services import EntryStore
from mileage_log.validation import validate_entry

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[Session], TravelEntryRepository]


class EntryCreate(BaseModel):
    # Raw form values; type and format checks happen in validate_entry.
    entry_date: Any = ""
    trip: Any = ""
    miles: Any = ""
    purpose: Any = ""


class EntryOut(BaseModel):
    id: str
    entry_date: str
    trip: str
    miles: float
    purpose: str
    created_at: str


class MonthEntries(BaseModel):
    month: str
    label: str
    entries: list[EntryOut]
    total_miles: float


router = APIRouter()


def get_session(request: Request, authorization: str | None = Header(default=None)) -> Session:
    identity: SupabaseAuthAdapter | None = request.app.state.identity
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=request.app.state.identity_error or "Identity provider not configured.",
        )
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token.")
    try:
        return identity.get_session(authorization.split(" ", 1)[1].strip())
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


def get_store(request: Request, session: Session = Depends(get_session)) -> EntryStore:
    repository = request.app.state.repository_factory(session)
    return EntryStore(repository, user_id=session.user_id)


def get_exporter(request: Request) -> MileageExportService:
    return request.app.state.exporter


def _load_month(store: EntryStore, session: Session, month: str) -> None:
    try:
        store.load(session.user_id, month)
    except InvalidMonthToken as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LoadError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/presets")
def presets():
    return [
        {"name": name, "one_way": mileage.one_way, "round": mileage.round}
        for name, mileage in PRESET_TRIPS.items()
    ]


@router.get("/session")
def whoami(session: Session = Depends(get_session)):
    return {"user_id": session.user_id, "display_name": session.display_name}


@router.get("/entries", response_model=MonthEntries)
def list_entries(
    month: str | None = Query(default=None),
    session: Session = Depends(get_session),
    store: EntryStore = Depends(get_store),
):
    month = month or current_month()
    _load_month(store, session, month)
    return MonthEntries(
        month=month,
        label=format_month_human(month),
        entries=[EntryOut(**entry.to_dict()) for entry in store.entries],
        total_miles=round(store.total_miles, 1),
    )


@router.post("/entries", status_code=status.HTTP_201_CREATED, response_model=EntryOut)
def create_entry(payload: EntryCreate, store: EntryStore = Depends(get_store)):
    result = validate_entry(EntryForm.from_mapping(payload.model_dump()))
    if not result.is_valid:
        return JSONResponse(
            status_code=422,
            content={"errors": result.errors_by_field()},
        )
    try:
        entry = store.add(result.payload)
    except MutationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return EntryOut(**entry.to_dict())


@router.get("/entries/export.xlsx")
def export_entries(
    month: str | None = Query(default=None),
    session: Session = Depends(get_session),
    store: EntryStore = Depends(get_store),
    exporter: MileageExportService = Depends(get_exporter),
):
    month = month or current_month()
    _load_month(store, session, month)
    try:
        artifact = store.export(session.display_name, exporter)
    except CapacityExceeded as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ExportError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entry(entry_id: str, confirm: bool = Query(default=False), store: EntryStore = Depends(get_store)):
    try:
        store.remove(entry_id, confirmed=confirm)
    except ConfirmationRequired as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except EntryNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found") from exc
    except MutationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _default_repository_factory(settings: Settings, client_init: ClientInitResult) -> RepositoryFactory:
    if settings.backend == "rest":
        if not client_init.ok:
            raise ConfigurationError(client_init.error)
        client = client_init.client
        return lambda session: RestTravelEntryRepository(client, session.access_token)

    @lru_cache(maxsize=1)
    def sqlite_repository() -> SqliteTravelEntryRepository:
        conn = connect_sqlite(settings.database_path)
        apply_all_migrations(conn)
        return SqliteTravelEntryRepository(conn)

    return lambda session: sqlite_repository()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(app.state.settings)
    yield


def create_app(
    settings: Settings | None = None,
    *,
    repository_factory: RepositoryFactory | None = None,
    identity: SupabaseAuthAdapter | None = None,
    exporter: MileageExportService | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    client_init = create_backend_client(settings)

    app = FastAPI(title="Mileage Log API", lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.identity = identity or (SupabaseAuthAdapter(client_init.client) if client_init.ok else None)
    app.state.identity_error = client_init.error
    app.state.repository_factory = repository_factory or _default_repository_factory(settings, client_init)
    app.state.exporter = exporter or MileageExportService(template_path=settings.template_path)
    app.include_router(router)
    return app


app = create_app()
