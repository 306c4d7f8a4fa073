"""
WhatsApp confirmation messages.

Builds the client and business confirmation texts for a booking and the
api.whatsapp.com deep links that open them. Confirmations are only
notifications: nothing here touches the appointment record.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from config import MESSAGING_FUNCTION_URL, MESSAGING_TIMEOUT
from errors import MessagingError

logger = logging.getLogger(__name__)

WHATSAPP_SEND_URL = "https://api.whatsapp.com/send"
URI_COMPONENT_SAFE = "!~*'()"

_WEEKDAYS_PT = ("segunda-feira", "terça-feira", "quarta-feira", "quinta-feira", "sexta-feira", "sábado", "domingo")
_MONTHS_PT = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
)


class ConfirmationRequest(BaseModel):
    appointment_id: Optional[str] = None
    client_name: Optional[str] = None
    client_whatsapp: Optional[str] = None
    business_name: Optional[str] = None
    business_whatsapp: Optional[str] = None
    service_name: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None


def format_phone(phone: str) -> str:
    """Digits only, with Brazil's country code added to bare 10/11 digit numbers."""
    cleaned = re.sub(r"\D", "", phone or "")
    if len(cleaned) in (10, 11):
        return f"55{cleaned}"
    return cleaned


def format_date(date_str: str) -> str:
    """'2025-03-03' -> 'segunda-feira, 03 de março de 2025'"""
    try:
        d = datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        return date_str
    return f"{_WEEKDAYS_PT[d.weekday()]}, {d.day:02d} de {_MONTHS_PT[d.month - 1]} de {d.year}"


def client_message(data: ConfirmationRequest) -> str:
    return (
        "✅ *Agendamento confirmado!*\n"
        "\n"
        f"Olá {data.client_name}, seu horário foi confirmado com sucesso.\n"
        "\n"
        f"🏢 *{data.business_name}*\n"
        f"🗓 *Data:* {format_date(data.date)}\n"
        f"⏰ *Horário:* {data.time}\n"
        f"💼 *Serviço:* {data.service_name}\n"
        "\n"
        "Qualquer dúvida, estamos à disposição no WhatsApp.\n"
        "\n"
        "_Agendamento realizado via UltraMind_"
    )


def business_message(data: ConfirmationRequest) -> str:
    return (
        "📢 *Novo agendamento!*\n"
        "\n"
        f"👤 *Cliente:* {data.client_name}\n"
        f"📞 *WhatsApp:* {data.client_whatsapp}\n"
        f"🗓 *Data:* {format_date(data.date)}\n"
        f"⏰ *Horário:* {data.time}\n"
        f"💼 *Serviço:* {data.service_name}\n"
        "\n"
        "_Notificação automática UltraMind_"
    )


def whatsapp_url(phone: str, message: str) -> str:
    return f"{WHATSAPP_SEND_URL}?phone={format_phone(phone)}&text={quote(message, safe=URI_COMPONENT_SAFE)}"


def build_confirmation(data: ConfirmationRequest) -> Dict[str, Any]:
    required = ("client_name", "client_whatsapp", "business_name", "service_name", "date", "time")
    missing = [name for name in required if not getattr(data, name)]
    if missing:
        raise MessagingError("Missing required fields for confirmation")

    client_text = client_message(data)
    business_text = business_message(data)
    return {
        "success": True,
        "clientWhatsAppUrl": whatsapp_url(data.client_whatsapp, client_text),
        "businessWhatsAppUrl": whatsapp_url(data.business_whatsapp, business_text) if data.business_whatsapp else None,
        "clientMessage": client_text,
        "businessMessage": business_text,
    }


def notify_booking(data: ConfirmationRequest) -> Optional[Dict[str, Any]]:
    """
    Request the confirmation for a new booking. Returns None on any
    failure; a booking never fails because of its notification.
    """
    try:
        if not MESSAGING_FUNCTION_URL:
            return build_confirmation(data)
        response = httpx.post(MESSAGING_FUNCTION_URL, json=data.model_dump(), timeout=MESSAGING_TIMEOUT)
        body = response.json()
        if not isinstance(body, dict):
            raise MessagingError(f"Unexpected reply from confirmation function: {type(body).__name__}")
        if response.status_code >= 400 or body.get("error"):
            raise MessagingError(body.get("error") or f"HTTP {response.status_code}")
        return body
    except (MessagingError, httpx.HTTPError, ValueError) as e:
        logger.warning(f"WhatsApp confirmation failed for appointment {data.appointment_id}: {e}")
        return None
