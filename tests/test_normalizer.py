from vendor_relay.normalizer import clean_vendor_response

from conftest import RAW_VENDOR_RESPONSE


def test_keeps_envelope_and_cleans_raw_data():
    cleaned = clean_vendor_response(RAW_VENDOR_RESPONSE)

    assert cleaned["id"] == "abc123xyz"
    assert cleaned["data"] == {"userId": 1}
    assert cleaned["timestamp"] == "2024-01-01T00:00:00+00:00"
    assert cleaned["source"] == "immediate-reply"
    assert cleaned["cleaned_data"] == {
        "address": "123 Main St, City, State 12345",
        "preferences": ["pref1", "pref2"],
    }
    assert "raw_data" not in cleaned


def test_trims_address_and_copies_preferences():
    cleaned = clean_vendor_response({"raw_data": {"address": "  X  ", "preferences": ["a", "b"]}})

    assert cleaned["cleaned_data"]["address"] == "X"
    assert cleaned["cleaned_data"]["preferences"] == ["a", "b"]


def test_drops_pii_fields():
    cleaned = clean_vendor_response(RAW_VENDOR_RESPONSE)

    flat = repr(cleaned)
    assert "user@example.com" not in flat
    assert "+1234567890" not in flat
    assert "user_email" not in cleaned["cleaned_data"]
    assert "phone_number" not in cleaned["cleaned_data"]


def test_missing_fields_default():
    cleaned = clean_vendor_response({"raw_data": {"user_email": "a@b.c"}})

    assert cleaned["cleaned_data"] == {"address": None, "preferences": []}


def test_additional_data_is_reduced_to_allow_list():
    response = {
        "raw_data": {
            "address": "1 Road",
            "additional_data": {"credit_score": 750, "last_purchase": "2023-12-01", "card_number": "4111"},
        }
    }

    cleaned = clean_vendor_response(response)

    assert cleaned["cleaned_data"]["additional_data"] == {"credit_score": 750, "last_purchase": "2023-12-01"}


def test_additional_data_absent_when_not_supplied():
    cleaned = clean_vendor_response(RAW_VENDOR_RESPONSE)

    assert "additional_data" not in cleaned["cleaned_data"]


def test_none_is_returned_unchanged():
    assert clean_vendor_response(None) is None


def test_response_without_raw_data_has_empty_cleaned_data():
    cleaned = clean_vendor_response({"id": "1", "source": "delayed-reply"})

    assert cleaned == {"id": "1", "data": None, "timestamp": None, "source": "delayed-reply", "cleaned_data": {}}


def test_second_pass_empties_cleaned_data():
    once = clean_vendor_response(RAW_VENDOR_RESPONSE)
    twice = clean_vendor_response(once)

    assert once["cleaned_data"] != {}
    assert twice["cleaned_data"] == {}
    assert twice["id"] == once["id"]


def test_unclean_input_is_returned_as_is():
    weird = {"raw_data": {"address": 42}}

    assert clean_vendor_response(weird) is weird


def test_empty_object_still_gets_envelope():
    assert clean_vendor_response({}) == {"id": None, "data": None, "timestamp": None, "source": None, "cleaned_data": {}}


def test_empty_raw_data_and_additional_data_are_cleaned():
    assert clean_vendor_response({"raw_data": {}})["cleaned_data"] == {"address": None, "preferences": []}

    cleaned = clean_vendor_response({"raw_data": {"address": "1 Road", "additional_data": {}}})
    assert cleaned["cleaned_data"]["additional_data"] == {"credit_score": None, "last_purchase": None}
