from types import SimpleNamespace

from scoring.features import PAYLOAD_FIELDS, batch_payload, customer_to_payload


def test_orm_style_customer_maps_flags_and_defaults():
    customer = SimpleNamespace(
        age=41, job="admin.", marital="single", education="tertiary",
        has_default=None, has_housing_loan=True, has_personal_loan=False,
        contact="telephone", month="jun", day_of_week="fri",
        campaign=None, pdays=None, previous=None, poutcome=None,
    )
    payload = customer_to_payload(customer)

    assert set(payload) == set(PAYLOAD_FIELDS)
    assert payload["default"] is False
    assert payload["housing"] is True
    assert payload["loan"] is False
    assert payload["campaign"] == 1
    assert payload["pdays"] == 999
    assert payload["previous"] == 0
    assert payload["poutcome"] == "unknown"


def test_zero_values_are_kept():
    payload = customer_to_payload({"age": 30, "campaign": 0, "pdays": 0, "previous": 0})
    assert payload["campaign"] == 0
    assert payload["pdays"] == 0


def test_dict_customer_accepts_short_flag_names():
    payload = customer_to_payload({"age": 30, "default": True, "housing": 1, "loan": None})
    assert payload["default"] is True
    assert payload["housing"] is True
    assert payload["loan"] is False


def test_batch_payload_keeps_order():
    body = batch_payload([{"age": 20}, {"age": 60}])
    assert [c["age"] for c in body["customers"]] == [20, 60]
