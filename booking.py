"""
Booking Service

Public booking submission and the appointment status lifecycle.

A submission is validated completely (client data, service, date, slot)
before anything is written. The slot is checked again against the store
at submission time, and the unique slot index turns a lost race into
SlotUnavailable instead of a double booking.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from availability import available_slots, get_settings, parse_date
from database import create_document, get_document, get_documents, parse_object_id, update_document
from errors import DateNotBookable, EmptyName, InvalidPhone, InvalidTransition, NotFound, SlotUnavailable
from messaging import ConfirmationRequest, notify_booking
from schemas import Appointment

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10

STATUS_TRANSITIONS = {
    "pendente": {"confirmado", "cancelado"},
    "confirmado": {"concluido", "cancelado"},
    "concluido": set(),
    "cancelado": set(),
}


def normalize_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")


def validate_client(name: Optional[str], phone: Optional[str]) -> Tuple[str, str]:
    """Trimmed name and phone digits, or EmptyName / InvalidPhone."""
    clean_name = (name or "").strip()
    if not clean_name:
        raise EmptyName()
    digits = normalize_phone(phone)
    if len(digits) < MIN_PHONE_DIGITS:
        raise InvalidPhone()
    return clean_name, digits


def get_active_service(db: Database, user_id: str, service_id: Optional[str]) -> Dict[str, Any]:
    oid = parse_object_id(service_id)
    service = get_document(db, "service", {"_id": oid, "user_id": user_id, "status": "active"}) if oid else None
    if not service:
        raise NotFound("Serviço não encontrado", field="service_id")
    return service


def submit_booking(
    db: Database,
    business: Dict[str, Any],
    service_id: Optional[str],
    date: str,
    time: str,
    client_name: Optional[str],
    client_phone: Optional[str],
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create an appointment from the public booking page.

    Returns the stored appointment (with its `id`) plus the WhatsApp
    `confirmation`, which is None when the confirmation could not be built.
    """
    user_id = business["user_id"]
    name, digits = validate_client(client_name, client_phone)
    service = get_active_service(db, user_id, service_id)

    day = parse_date(date)
    if day is None:
        raise DateNotBookable()
    settings = get_settings(db, user_id)
    if time not in available_slots(db, business, day, settings=settings):
        logger.info(f"Rejected booking for {user_id} on {day} at {time}: slot unavailable")
        raise SlotUnavailable()

    status = "confirmado" if settings.auto_confirm else "pendente"
    appointment = Appointment(
        user_id=user_id,
        client_name=name,
        client_whatsapp=digits,
        service_id=str(service["_id"]),
        date=day.isoformat(),
        time=time,
        status=status,
        confirmed_at=datetime.now(timezone.utc) if status == "confirmado" else None,
        notes=(notes or "").strip() or None,
    )
    try:
        appointment_id = create_document(db, "appointment", appointment)
    except DuplicateKeyError:
        logger.warning(f"Slot {day} {time} of {user_id} was taken by a concurrent booking")
        raise SlotUnavailable()
    logger.info(f"Appointment {appointment_id} created for {user_id} on {day} at {time} ({status})")

    confirmation = None
    if status == "confirmado":
        confirmation = notify_booking(
            ConfirmationRequest(
                appointment_id=appointment_id,
                client_name=name,
                client_whatsapp=digits,
                business_name=business.get("business_name"),
                business_whatsapp=business.get("whatsapp"),
                service_name=service.get("name"),
                date=appointment.date,
                time=time,
            )
        )

    record = appointment.model_dump()
    record["id"] = appointment_id
    record["confirmation"] = confirmation
    return record


def transition_status(db: Database, user_id: str, appointment_id: str, new_status: str) -> Dict[str, Any]:
    """Move an appointment along pendente -> confirmado -> concluido/cancelado."""
    oid = parse_object_id(appointment_id)
    current = get_document(db, "appointment", {"_id": oid, "user_id": user_id}) if oid else None
    if not current:
        raise NotFound("Agendamento não encontrado", field="appointment_id")

    old_status = current.get("status")
    if new_status not in STATUS_TRANSITIONS.get(old_status, set()):
        raise InvalidTransition(f"Não é possível mudar de '{old_status}' para '{new_status}'")

    updates: Dict[str, Any] = {"status": new_status}
    if new_status == "confirmado" and not current.get("confirmed_at"):
        updates["confirmed_at"] = datetime.now(timezone.utc)

    # the status filter makes this a compare-and-set against concurrent edits
    updated = update_document(db, "appointment", {"_id": oid, "user_id": user_id, "status": old_status}, updates)
    if updated is None:
        raise InvalidTransition("O agendamento foi alterado por outra operação")
    logger.info(f"Appointment {appointment_id} moved from {old_status} to {new_status}")
    return updated


def list_appointments(db: Database, user_id: str, date: Optional[str] = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"user_id": user_id}
    if date:
        query["date"] = date
    return get_documents(db, "appointment", query, sort=[("date", ASCENDING), ("time", ASCENDING)])


def appointment_stats(db: Database, user_id: str, date: Optional[str] = None) -> Dict[str, int]:
    items = list_appointments(db, user_id, date)
    counts = {status: 0 for status in STATUS_TRANSITIONS}
    for item in items:
        if item.get("status") in counts:
            counts[item["status"]] += 1
    return {
        "total": len(items),
        "confirmados": counts["confirmado"],
        "pendentes": counts["pendente"],
        "cancelados": counts["cancelado"],
        "concluidos": counts["concluido"],
    }
