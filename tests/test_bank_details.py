from bank_details import EXTRACTION_VERSION, extract_bank_details


def test_nested_camel_case_form():
    form = {
        "clinicName": "Sunrise Clinic",
        "bankDetails": {
            "accountHolderName": "Sunrise Clinic Trust",
            "accountNumber": "001122334455",
            "ifscCode": "hdfc0001234",
            "bankName": "HDFC Bank",
            "branch": "Andheri",
        },
        "upiId": "sunrise@hdfc",
    }
    details = extract_bank_details(form)
    assert details == {
        "account_holder_name": "Sunrise Clinic Trust",
        "account_number": "001122334455",
        "ifsc_code": "HDFC0001234",
        "bank_name": "HDFC Bank",
        "branch": "Andheri",
        "upi_id": "sunrise@hdfc",
        "extraction_version": EXTRACTION_VERSION,
    }


def test_flat_snake_case_form():
    details = extract_bank_details({"account_number": 99887766, "ifsc": "SBIN0000001", "bank_name": "SBI"})
    assert details["account_number"] == "99887766"
    assert details["ifsc_code"] == "SBIN0000001"
    assert details["bank_name"] == "SBI"
    assert details["upi_id"] is None


def test_nested_container_wins_over_top_level():
    form = {"accountNumber": "111", "bank_details": {"account_number": "222"}}
    assert extract_bank_details(form)["account_number"] == "222"


def test_blank_values_fall_through_to_next_candidate():
    form = {"bankDetails": {"accountNumber": "  "}, "accountNo": "333"}
    assert extract_bank_details(form)["account_number"] == "333"


def test_top_level_name_is_not_a_bank_name():
    details = extract_bank_details({"name": "Green Grocers", "accountNumber": "444"})
    assert details["bank_name"] is None
    assert details["account_number"] == "444"


def test_nested_objects_are_not_values():
    assert extract_bank_details({"bankDetails": {"accountNumber": {"value": "555"}}}) is None


def test_missing_or_malformed_forms_yield_none():
    assert extract_bank_details(None) is None
    assert extract_bank_details({}) is None
    assert extract_bank_details(["not", "a", "dict"]) is None
    assert extract_bank_details({"bankDetails": "see attachment"}) is None
