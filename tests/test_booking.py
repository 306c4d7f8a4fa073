"""
Tests for booking.py

Submission validation, the confirmed write, and status transitions.
"""

import httpx
import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import booking
import messaging
from availability import available_slots
from booking import appointment_stats, submit_booking, transition_status
from database import ensure_indexes
from errors import DateNotBookable, EmptyName, InvalidPhone, InvalidTransition, NotFound, SlotUnavailable, StoreError

MONDAY = "2025-03-03"
SATURDAY = "2025-03-08"


@pytest.fixture
def book(db, morning_business, service):
    def _book(**overrides):
        fields = {
            "service_id": str(service["_id"]),
            "date": MONDAY,
            "time": "10:00",
            "client_name": "Ana Souza",
            "client_phone": "(11) 98888-7777",
        }
        fields.update(overrides)
        return submit_booking(db, morning_business, **fields)

    return _book


class TestValidation:
    def test_short_phone_is_rejected_without_writing(self, db, book):
        with pytest.raises(InvalidPhone) as exc:
            book(client_phone="123")

        assert exc.value.field == "client_whatsapp"
        assert db["appointment"].count_documents({}) == 0

    def test_blank_name_is_rejected(self, db, book):
        with pytest.raises(EmptyName):
            book(client_name="   ")
        assert db["appointment"].count_documents({}) == 0

    def test_name_is_checked_before_phone(self, book):
        with pytest.raises(EmptyName):
            book(client_name="", client_phone="")

    @pytest.mark.parametrize("service_id", [None, "", "not-an-id", str(ObjectId())])
    def test_unknown_service(self, db, book, service_id):
        with pytest.raises(NotFound) as exc:
            book(service_id=service_id)
        assert exc.value.field == "service_id"

    def test_inactive_service(self, db, book, service):
        db["service"].update_one({"_id": service["_id"]}, {"$set": {"status": "inactive"}})

        with pytest.raises(NotFound):
            book()

    def test_service_of_another_business(self, db, book):
        foreign = db["service"].insert_one({"user_id": "other", "name": "Banho", "status": "active"}).inserted_id

        with pytest.raises(NotFound):
            book(service_id=str(foreign))

    @pytest.mark.parametrize("date", [SATURDAY, "2025-02-30", "amanhã"])
    def test_date_not_bookable(self, db, book, date):
        with pytest.raises(DateNotBookable):
            book(date=date)
        assert db["appointment"].count_documents({}) == 0

    def test_occupied_slot(self, db, book, add_appointment):
        add_appointment("owner-1", MONDAY, "10:00")

        with pytest.raises(SlotUnavailable):
            book()
        assert db["appointment"].count_documents({}) == 1

    @pytest.mark.parametrize("time", ["10:30", "12:00", "08:00", "10h"])
    def test_time_off_the_grid(self, book, time):
        with pytest.raises(SlotUnavailable):
            book(time=time)


class TestSubmit:
    def test_creates_confirmed_appointment(self, db, book, service):
        record = book(notes="  primeira vez  ")

        stored = db["appointment"].find_one({"_id": ObjectId(record["id"])})
        assert stored["status"] == "confirmado"
        assert stored["confirmed_at"] is not None
        assert stored["client_name"] == "Ana Souza"
        assert stored["client_whatsapp"] == "11988887777"
        assert stored["service_id"] == str(service["_id"])
        assert stored["notes"] == "primeira vez"
        assert (stored["date"], stored["time"]) == (MONDAY, "10:00")

    def test_booked_slot_leaves_availability(self, db, book, morning_business):
        book(time="09:00")

        assert available_slots(db, morning_business, MONDAY) == ["10:00", "11:00"]
        with pytest.raises(SlotUnavailable):
            book(time="09:00", client_name="Outra Pessoa")

    def test_returns_whatsapp_confirmation(self, book):
        record = book()
        confirmation = record["confirmation"]

        assert confirmation["success"] is True
        assert confirmation["clientWhatsAppUrl"].startswith("https://api.whatsapp.com/send?phone=5511988887777&text=")
        assert confirmation["businessWhatsAppUrl"].startswith("https://api.whatsapp.com/send?phone=5511999999999&text=")
        assert "Corte Feminino" in confirmation["clientMessage"]

    def test_messaging_failure_does_not_fail_booking(self, db, book, monkeypatch):
        def refuse(*args, **kwargs):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(messaging, "MESSAGING_FUNCTION_URL", "http://functions.local/send-whatsapp-confirmation")
        monkeypatch.setattr(messaging.httpx, "post", refuse)

        record = book()

        assert record["confirmation"] is None
        assert db["appointment"].count_documents({"status": "confirmado"}) == 1

    @pytest.mark.parametrize("reply", [["ok"], "ok", None, 42])
    def test_unexpected_function_reply_does_not_fail_booking(self, db, book, monkeypatch, reply):
        monkeypatch.setattr(messaging, "MESSAGING_FUNCTION_URL", "http://functions.local/send-whatsapp-confirmation")
        monkeypatch.setattr(messaging.httpx, "post", lambda url, json, timeout: httpx.Response(200, json=reply))

        record = book(time="09:00")

        assert record["confirmation"] is None
        assert record["status"] == "confirmado"
        assert db["appointment"].count_documents({"time": "09:00", "status": "confirmado"}) == 1

    def test_manual_confirmation_creates_pending(self, db, book):
        db["settings"].update_one({"user_id": "owner-1"}, {"$set": {"auto_confirm": False}})

        record = book()

        assert record["status"] == "pendente"
        assert record["confirmed_at"] is None
        assert record["confirmation"] is None

    def test_lost_race_is_slot_unavailable(self, book, monkeypatch):
        def duplicate(*args, **kwargs):
            raise DuplicateKeyError("E11000 duplicate key error collection: appointment")

        monkeypatch.setattr(booking, "create_document", duplicate)

        with pytest.raises(SlotUnavailable):
            book()

    def test_unique_slot_index_hit_is_slot_unavailable(self, db, book, add_appointment, monkeypatch):
        ensure_indexes(db)
        add_appointment("owner-1", MONDAY, "10:00", status="confirmado")
        # a stale read: the slot still looks free when the insert happens
        monkeypatch.setattr(booking, "available_slots", lambda *args, **kwargs: ["09:00", "10:00", "11:00"])

        with pytest.raises(SlotUnavailable):
            book(time="10:00")
        assert db["appointment"].count_documents({"time": "10:00"}) == 1

    def test_store_failure_propagates(self, book, monkeypatch):
        def down(*args, **kwargs):
            raise StoreError()

        monkeypatch.setattr(booking, "create_document", down)

        with pytest.raises(StoreError) as exc:
            book()
        assert exc.value.status_code == 503


class TestTransitions:
    def test_pending_to_confirmed_sets_confirmed_at(self, db, add_appointment):
        appointment_id = add_appointment("owner-1", MONDAY, "09:00", status="pendente")

        updated = transition_status(db, "owner-1", str(appointment_id), "confirmado")

        assert updated["status"] == "confirmado"
        assert updated["confirmed_at"] is not None

    @pytest.mark.parametrize(
        "start,target",
        [("pendente", "cancelado"), ("confirmado", "concluido"), ("confirmado", "cancelado")],
    )
    def test_allowed(self, db, add_appointment, start, target):
        appointment_id = add_appointment("owner-1", MONDAY, "09:00", status=start)

        assert transition_status(db, "owner-1", str(appointment_id), target)["status"] == target

    @pytest.mark.parametrize(
        "start,target",
        [
            ("pendente", "concluido"),
            ("confirmado", "pendente"),
            ("confirmado", "confirmado"),
            ("concluido", "cancelado"),
            ("cancelado", "confirmado"),
        ],
    )
    def test_rejected(self, db, add_appointment, start, target):
        appointment_id = add_appointment("owner-1", MONDAY, "09:00", status=start)

        with pytest.raises(InvalidTransition):
            transition_status(db, "owner-1", str(appointment_id), target)
        assert db["appointment"].find_one({"_id": appointment_id})["status"] == start

    def test_other_owner_cannot_touch_appointment(self, db, add_appointment):
        appointment_id = add_appointment("owner-1", MONDAY, "09:00", status="pendente")

        with pytest.raises(NotFound):
            transition_status(db, "intruder", str(appointment_id), "cancelado")


def test_stats(db, add_appointment):
    add_appointment("owner-1", MONDAY, "09:00", status="confirmado")
    add_appointment("owner-1", MONDAY, "10:00", status="pendente")
    add_appointment("owner-1", MONDAY, "11:00", status="cancelado")
    add_appointment("owner-1", "2025-03-04", "09:00", status="concluido")

    assert appointment_stats(db, "owner-1", MONDAY) == {
        "total": 3,
        "confirmados": 1,
        "pendentes": 1,
        "cancelados": 1,
        "concluidos": 0,
    }
    assert appointment_stats(db, "owner-1")["total"] == 4
