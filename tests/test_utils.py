"""Tests for normalization helpers."""

from laundrytrack.utils import (
    CODE_ALPHABET,
    CODE_LENGTH,
    codes_match,
    generate_verification_code,
    normalize_active_flag,
    normalize_customer_type,
    normalize_delivery_type,
    normalize_phone,
)


class TestNormalizePhone:
    def test_local_number(self):
        assert normalize_phone("912345678") == "+56912345678"

    def test_with_country_code(self):
        assert normalize_phone("56912345678") == "+56912345678"

    def test_formatted_international(self):
        assert normalize_phone("+56 9 1234 5678") == "+56912345678"

    def test_empty(self):
        assert normalize_phone("") == ""
        assert normalize_phone(None) == ""


class TestNormalizeTypes:
    def test_delivery_type(self):
        assert normalize_delivery_type("Retiro") == "pickup"
        assert normalize_delivery_type("Despacho") == "dispatch"
        assert normalize_delivery_type("dispatch") == "dispatch"
        assert normalize_delivery_type(None) == "pickup"
        assert normalize_delivery_type("teleport") == "pickup"

    def test_customer_type(self):
        assert normalize_customer_type("Particular") == "individual"
        assert normalize_customer_type("Hotel") == "hotel"
        assert normalize_customer_type("Institución") == "institution"
        assert normalize_customer_type("Empresa") == "company"
        assert normalize_customer_type("") == "individual"

    def test_active_flag(self):
        assert normalize_active_flag("Activa") is True
        assert normalize_active_flag("Inactiva") is False
        assert normalize_active_flag(None) is True
        assert normalize_active_flag(False) is False


class TestVerificationCode:
    def test_generated_code_shape(self):
        for _ in range(50):
            code = generate_verification_code()
            assert len(code) == CODE_LENGTH
            assert set(code) <= set(CODE_ALPHABET)

    def test_alphabet_excludes_ambiguous_characters(self):
        assert not set("IO01") & set(CODE_ALPHABET)

    def test_codes_match(self):
        assert codes_match("b7k2m", "B7K2M")
        assert codes_match(" B7K2M ", "B7K2M")
        assert not codes_match("B7K2N", "B7K2M")
        assert not codes_match("", None)
        assert not codes_match("", "")
