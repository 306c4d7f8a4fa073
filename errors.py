"""
Booking error taxonomy.

Each error carries a stable `code`, the request `field` it refers to (if
any) and a user-facing message in Portuguese, which is what the booking
page shows inline.
"""

from typing import Optional


class BookingError(Exception):
    code = "booking_error"
    status_code = 400
    default_message = "Não foi possível concluir a operação"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "field": self.field}


class NotFound(BookingError):
    code = "not_found"
    status_code = 404
    default_message = "Não encontrado"


class InvalidConfiguration(BookingError):
    code = "invalid_configuration"
    status_code = 500
    default_message = "Configuração de horários inválida"


class DateNotBookable(BookingError):
    code = "date_not_bookable"
    status_code = 422
    default_message = "Não há atendimento nesta data"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = "date"):
        super().__init__(message, field)


class SlotUnavailable(BookingError):
    code = "slot_unavailable"
    status_code = 409
    default_message = "Este horário não está mais disponível"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = "time"):
        super().__init__(message, field)


class EmptyName(BookingError):
    code = "empty_name"
    status_code = 422
    default_message = "Informe seu nome"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = "client_name"):
        super().__init__(message, field)


class InvalidPhone(BookingError):
    code = "invalid_phone"
    status_code = 422
    default_message = "Informe um WhatsApp válido com DDD"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = "client_whatsapp"):
        super().__init__(message, field)


class InvalidTransition(BookingError):
    code = "invalid_transition"
    status_code = 409
    default_message = "Mudança de status não permitida"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = "status"):
        super().__init__(message, field)


class StoreError(BookingError):
    code = "store_error"
    status_code = 503
    default_message = "Não foi possível salvar agora. Tente novamente."


class MessagingError(BookingError):
    code = "messaging_error"
    status_code = 500
    default_message = "Falha ao gerar a confirmação por WhatsApp"
