from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ValidationError
from app.services.validation import validate_booking_changes, validate_form

from conftest import NOW, make_form


def test_valid_form_passes():
    form = make_form()
    assert validate_form(form, now=NOW) is form


def test_past_pickup_time_rejected():
    form = make_form(pickup_datetime=NOW - timedelta(minutes=1))

    with pytest.raises(ValidationError) as exc:
        validate_form(form, now=NOW)
    assert exc.value.errors == {"pickup_datetime": "Pickup time must be in the future"}


def test_naive_pickup_time_is_treated_as_utc():
    naive = datetime(2026, 10, 18, 11, 0)
    with pytest.raises(ValidationError):
        validate_form(make_form(pickup_datetime=naive), now=NOW)

    validate_form(make_form(pickup_datetime=naive + timedelta(hours=3)), now=NOW)


@pytest.mark.parametrize("phone", ["555123456", "55512345678", "555-123-4567", ""])
def test_phone_must_be_ten_digits(phone):
    with pytest.raises(ValidationError) as exc:
        validate_form(make_form(phone_number=phone), now=NOW)
    assert "phone_number" in exc.value.errors


def test_all_problems_reported_together():
    form = replace(
        make_form(),
        user_name="J",
        vehicle_color="",
        license_plate="",
        pickup_address="x",
        drop_off_address="   ",
        vehicle_size="",
        pickup_datetime=None,
    )

    with pytest.raises(ValidationError) as exc:
        validate_form(form, now=NOW)

    assert set(exc.value.errors) == {
        "user_name",
        "vehicle_color",
        "license_plate",
        "pickup_address",
        "drop_off_address",
        "vehicle_size",
        "pickup_datetime",
    }


@pytest.mark.parametrize("distance", [float("nan"), float("inf")])
def test_non_finite_distance_rejected(distance):
    with pytest.raises(ValidationError) as exc:
        validate_form(make_form(distance=distance), now=NOW)
    assert set(exc.value.errors) == {"distance"}


def test_booking_changes_checked_field_by_field():
    with pytest.raises(ValidationError) as exc:
        validate_booking_changes(
            {"phone_number": "12345", "pickup_address": "", "pickup_datetime": NOW - timedelta(hours=1)},
            now=NOW,
        )
    assert set(exc.value.errors) == {"phone_number", "pickup_address", "pickup_datetime"}


def test_booking_changes_pickup_normalised_to_utc():
    local = datetime(2026, 10, 20, 10, 0, tzinfo=timezone(timedelta(hours=2)))

    changes = validate_booking_changes({"pickup_datetime": local, "additional_details": "gate code 12"}, now=NOW)

    assert changes["pickup_datetime"] == local
    assert changes["pickup_datetime"].utcoffset() == timedelta(0)
    assert changes["pickup_datetime"].hour == 8
    assert changes["additional_details"] == "gate code 12"
