import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import database
from availability import available_slots, derive_slug, get_settings, list_active_services, resolve_business, unique_slug
from booking import STATUS_TRANSITIONS, appointment_stats, list_appointments, submit_booking, transition_status
from config import CORS_ORIGINS, LOG_LEVEL, PORT
from database import create_document, get_document, update_document
from errors import BookingError, MessagingError
from messaging import ConfirmationRequest, build_confirmation
from schemas import DATE_PATTERN, Profile, Service, Settings, SettingsUpdate

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    if database.db is not None:
        try:
            database.ensure_indexes(database.db)
        except PyMongoError as e:
            logger.error(f"Failed to create indexes: {e}")
    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Appointment Booking API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Helpers

def get_db() -> Database:
    if database.db is None:
        raise HTTPException(500, detail="Database not configured")
    return database.db


def get_optional_db() -> Optional[Database]:
    return database.db


def to_public(doc: Optional[dict]) -> Optional[dict]:
    """JSON-friendly copy of a stored document: `_id` becomes `id`, ids and dates become strings."""
    if not doc:
        return doc
    public = {}
    for key, value in doc.items():
        if isinstance(value, ObjectId):
            value = str(value)
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        public["id" if key == "_id" else key] = value
    return public


def business_public(profile: dict) -> dict:
    return {
        "id": str(profile["_id"]),
        "slug": profile.get("slug") or derive_slug(profile.get("business_name")),
        "business_name": profile.get("business_name"),
        "address": profile.get("address"),
        "whatsapp": profile.get("whatsapp"),
        "instagram": profile.get("instagram"),
        "description": profile.get("description"),
        "logo_url": profile.get("logo_url"),
    }


# Request / response models

class AvailabilityResponse(BaseModel):
    date: str
    slots: List[str]


class CreateBooking(BaseModel):
    service_id: Optional[str] = None
    client_name: Optional[str] = None
    client_whatsapp: Optional[str] = None
    date: str
    time: str
    notes: Optional[str] = None


class CreateBusiness(BaseModel):
    user_id: str
    business_name: str = Field(..., min_length=1)
    owner_name: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    instagram: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None


class StatusChange(BaseModel):
    status: str


# Public booking page

@app.get("/agendar/{slug}")
def public_business(slug: str, db: Database = Depends(get_db)):
    profile = resolve_business(db, slug)
    settings = get_settings(db, profile["user_id"])
    return {
        "business": business_public(profile),
        "services": [to_public(s) for s in list_active_services(db, profile["user_id"])],
        "settings": {
            "working_days": settings.working_days,
            "working_hours_start": settings.working_hours_start,
            "working_hours_end": settings.working_hours_end,
            "appointment_interval": settings.appointment_interval,
        },
    }


@app.get("/agendar/{slug}/availability", response_model=AvailabilityResponse)
def availability(
    slug: str,
    date: str = Query(..., description="YYYY-MM-DD"),
    db: Database = Depends(get_db),
):
    profile = resolve_business(db, slug)
    return AvailabilityResponse(date=date, slots=available_slots(db, profile, date))


@app.post("/agendar/{slug}/appointments", status_code=201)
def create_booking(slug: str, payload: CreateBooking, db: Database = Depends(get_db)):
    profile = resolve_business(db, slug)
    record = submit_booking(
        db,
        profile,
        service_id=payload.service_id,
        date=payload.date,
        time=payload.time,
        client_name=payload.client_name,
        client_phone=payload.client_whatsapp,
        notes=payload.notes,
    )
    return to_public(record)


# Dashboard

@app.post("/businesses", status_code=201)
def create_business(payload: CreateBusiness, db: Database = Depends(get_db)):
    if get_document(db, "profile", {"user_id": payload.user_id}):
        raise HTTPException(409, detail="Profile already exists")
    try:
        slug = unique_slug(db, payload.business_name)
    except ValueError as e:
        raise HTTPException(422, detail=str(e))

    profile = Profile(**payload.model_dump(), slug=slug)
    try:
        new_id = create_document(db, "profile", profile)
    except DuplicateKeyError:
        raise HTTPException(409, detail="Profile or slug already exists, try again")
    if not get_document(db, "settings", {"user_id": payload.user_id}):
        create_document(db, "settings", Settings(user_id=payload.user_id))
    logger.info(f"Business '{payload.business_name}' registered with slug '{slug}'")
    return {"id": new_id, "slug": slug}


@app.get("/dashboard/{user_id}/settings")
def read_settings(user_id: str, db: Database = Depends(get_db)):
    return get_settings(db, user_id).model_dump() | {"user_id": user_id}


@app.put("/dashboard/{user_id}/settings")
def write_settings(user_id: str, payload: SettingsUpdate, db: Database = Depends(get_db)):
    data = payload.model_dump()
    data["user_id"] = user_id
    doc = update_document(db, "settings", {"user_id": user_id}, data, upsert=True)
    return to_public(doc)


@app.get("/dashboard/{user_id}/appointments")
def dashboard_appointments(
    user_id: str,
    date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    db: Database = Depends(get_db),
):
    return [to_public(a) for a in list_appointments(db, user_id, date)]


@app.patch("/dashboard/{user_id}/appointments/{appointment_id}/status")
def change_status(user_id: str, appointment_id: str, payload: StatusChange, db: Database = Depends(get_db)):
    if payload.status not in STATUS_TRANSITIONS:
        raise HTTPException(422, detail=f"Unknown status '{payload.status}'")
    return to_public(transition_status(db, user_id, appointment_id, payload.status))


@app.get("/dashboard/{user_id}/stats")
def dashboard_stats(
    user_id: str,
    date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    db: Database = Depends(get_db),
):
    return appointment_stats(db, user_id, date)


# Functions

@app.post("/functions/send-whatsapp-confirmation")
def send_whatsapp_confirmation(payload: ConfirmationRequest):
    logger.info(f"Processing appointment confirmation: {payload.appointment_id}")
    try:
        return build_confirmation(payload)
    except MessagingError as e:
        logger.error(f"Error in send-whatsapp-confirmation: {e.message}")
        return JSONResponse(status_code=500, content={"error": e.message})


# Seed endpoint to insert a demo business if empty
@app.post("/seed")
def seed_data(db: Database = Depends(get_db)):
    if get_document(db, "profile", {"user_id": "demo"}):
        return {"message": "Already seeded"}

    create_document(db, "profile", Profile(
        user_id="demo",
        business_name="Salão Premium",
        slug=unique_slug(db, "Salão Premium"),
        address="Rua das Flores, 123 - Centro, São Paulo",
        whatsapp="5511999999999",
        instagram="salaopremium",
    ))
    create_document(db, "settings", Settings(user_id="demo"))
    services = [
        Service(user_id="demo", name="Corte Feminino", duration=45, price=80),
        Service(user_id="demo", name="Corte Masculino", duration=30, price=50),
        Service(user_id="demo", name="Escova", duration=40, price=60),
        Service(user_id="demo", name="Coloração", duration=120, price=180),
        Service(user_id="demo", name="Manicure", duration=45, price=40),
        Service(user_id="demo", name="Pedicure", duration=50, price=50),
    ]
    for s in services:
        create_document(db, "service", s)

    return {"message": "Seeded"}


@app.get("/")
def root():
    return {
        "name": "Appointment Booking API",
        "endpoints": ["/agendar/{slug}", "/agendar/{slug}/availability", "/agendar/{slug}/appointments", "/dashboard/{user_id}"],
    }


@app.get("/test")
def test_database(db: Optional[Database] = Depends(get_optional_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Configured",
    }
    if db is None:
        return response
    try:
        response["indexes"] = {
            name: sorted(db[name].index_information()) for name in ("profile", "settings", "service", "appointment")
        }
        response["database"] = "✅ Connected"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
