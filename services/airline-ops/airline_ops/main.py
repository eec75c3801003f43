"""FastAPI application exposing the airline-ops API."""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Type

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import queries, service
from .db import Database
from .errors import ConflictError, InfrastructureError, NotFoundError, ValidationError
from .schemas import (
    AircraftWrite,
    AirlineWrite,
    AirportWrite,
    BookingWrite,
    CrewAssignment,
    CrewMemberWrite,
    CrewRemoval,
    Envelope,
    ErrorEnvelope,
    FlightWrite,
    PassengerWrite,
    serialize,
)
from .validator import ConflictReason, EntityKind

logger = logging.getLogger("airline_ops")
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())


@dataclass(frozen=True)
class Resource:
    kind: EntityKind
    prefix: str
    plural: str
    write_model: Type[BaseModel]


RESOURCES: List[Resource] = [
    Resource(EntityKind.AIRLINE, "/airlines", "Airlines", AirlineWrite),
    Resource(EntityKind.AIRPORT, "/airports", "Airports", AirportWrite),
    Resource(EntityKind.AIRCRAFT, "/aircraft", "Aircraft", AircraftWrite),
    Resource(EntityKind.FLIGHT, "/flights", "Flights", FlightWrite),
    Resource(EntityKind.PASSENGER, "/passengers", "Passengers", PassengerWrite),
    Resource(EntityKind.BOOKING, "/bookings", "Bookings", BookingWrite),
    Resource(EntityKind.CREW_MEMBER, "/crew-members", "Crew members", CrewMemberWrite),
]


def _cors_origins() -> List[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


async def get_db(request: Request):
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


def build_router(resource: Resource) -> APIRouter:
    """Create the list/get/create/update/delete routes for one entity."""

    kind = resource.kind
    label = service.label_for(kind)
    WriteModel = resource.write_model
    router = APIRouter(prefix=resource.prefix, tags=[resource.plural])

    @router.get("", response_model=Envelope)
    async def list_records(db: AsyncSession = Depends(get_db)) -> Envelope:
        rows = await queries.LIST_VIEWS[kind](db)
        return Envelope(message=f"{resource.plural} retrieved successfully", data=rows)

    @router.get("/{record_id}", response_model=Envelope)
    async def get_record(record_id: str, db: AsyncSession = Depends(get_db)) -> Envelope:
        detail = await queries.DETAIL_VIEWS[kind](db, record_id)
        if detail is None:
            raise NotFoundError(label)
        return Envelope(message=f"{label} retrieved successfully", data=detail)

    @router.post("", response_model=Envelope, status_code=201)
    async def create_record(payload: WriteModel, db: AsyncSession = Depends(get_db)) -> Envelope:
        created = await service.create_record(db, kind, payload.model_dump())
        return Envelope(message=f"{label} created successfully", data=serialize(kind, created))

    @router.put("/{record_id}", response_model=Envelope)
    async def update_record(record_id: str, payload: WriteModel, db: AsyncSession = Depends(get_db)) -> Envelope:
        updated = await service.update_record(db, kind, record_id, payload.model_dump())
        return Envelope(message=f"{label} updated successfully", data=serialize(kind, updated))

    @router.delete("/{record_id}", response_model=Envelope)
    async def delete_record(record_id: str, db: AsyncSession = Depends(get_db)) -> Envelope:
        await service.delete_record(db, kind, record_id)
        return Envelope(message=f"{label} deleted successfully")

    return router


crew_router = APIRouter(prefix="/crew-members", tags=["Crew members"])


@crew_router.post("/assign", response_model=Envelope, status_code=201)
async def assign_crew(payload: CrewAssignment, db: AsyncSession = Depends(get_db)) -> Envelope:
    assignment = await service.assign_crew(db, payload.flight_id, payload.crew_member_id, payload.role)
    return Envelope(
        message="Crew member assigned to flight successfully",
        data=serialize(EntityKind.FLIGHT_CREW, assignment),
    )


@crew_router.delete("/assign", response_model=Envelope)
async def remove_crew(payload: CrewRemoval, db: AsyncSession = Depends(get_db)) -> Envelope:
    await service.remove_crew(db, payload.flight_id, payload.crew_member_id)
    return Envelope(message="Crew member removed from flight successfully")


api_router = APIRouter(prefix="/api", tags=["Reporting"])


@api_router.get("/health")
async def health(request: Request):
    database: Database = request.app.state.database
    try:
        timestamp = await database.ping()
    except (SQLAlchemyError, OSError, RuntimeError) as exc:
        logger.error("Health check failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Database connection failed", "error": str(exc)},
        )
    return {"status": "ok", "message": "Database connection successful", "timestamp": timestamp}


@api_router.get("/stats", response_model=Envelope)
async def stats(db: AsyncSession = Depends(get_db)) -> Envelope:
    data = await queries.collect_stats(db)
    return Envelope(message="Database statistics retrieved successfully", data=data)


def _error_body(envelope: ErrorEnvelope) -> Dict[str, object]:
    return envelope.model_dump(exclude_none=True)


def install_exception_handlers(app: FastAPI) -> None:
    """Translate service exceptions into the JSON envelope and status codes."""

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError) -> JSONResponse:
        body = ErrorEnvelope(message=str(exc), reason=exc.reason, field=exc.conflict.field, data=exc.counts)
        return JSONResponse(status_code=exc.status_code, content=_error_body(body))

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError) -> JSONResponse:
        body = ErrorEnvelope(message=str(exc), reason=exc.reason, field=exc.field)
        return JSONResponse(status_code=exc.status_code, content=_error_body(body))

    @app.exception_handler(RequestValidationError)
    async def handle_malformed(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = jsonable_encoder(exc.errors())
        field: Optional[str] = None
        if errors and errors[0].get("loc"):
            field = str(errors[0]["loc"][-1])
        body = ErrorEnvelope(message="Invalid request payload", reason=ConflictReason.MALFORMED_FIELD.value, field=field)
        content = _error_body(body)
        content["errors"] = errors
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"message": str(exc)})

    @app.exception_handler(InfrastructureError)
    async def handle_infrastructure(request: Request, exc: InfrastructureError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(SQLAlchemyError)
    async def handle_storage(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Unhandled storage error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc)})


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the application around an explicit database handle."""

    app = FastAPI(title="Airline Operations", version="0.1.0")
    app.state.database = database or Database()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )

    @app.on_event("startup")
    async def on_startup() -> None:
        await app.state.database.init_db()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await app.state.database.close()

    install_exception_handlers(app)
    # assignment routes must win over /crew-members/{record_id}
    app.include_router(crew_router)
    for resource in RESOURCES:
        app.include_router(build_router(resource))
    app.include_router(api_router)
    return app


app = create_app()
