"""Pure helpers: phone canonicalization, star rounding, status parsing, base64 payloads."""

import base64

import pytest

from restaurante.core.errors import FormatError, ValidationError
from restaurante.models import OrderStatus
from restaurante.services.auth_service import canonical_phone, format_phone, generate_code
from restaurante.services.media import decode_base64_payload, to_data_url
from restaurante.services.order_service import parse_status
from restaurante.services.rating_service import format_average, round_stars


class TestPhone:

    @pytest.mark.parametrize("raw", ["5512345678", "55 1234 5678", "(55) 1234-5678", "55.1234.5678"])
    def test_ten_digits_are_canonicalized(self, raw):
        assert format_phone(raw) == "+525512345678"

    @pytest.mark.parametrize("raw", ["551234567", "55123456789", "", "telefono"])
    def test_wrong_length_is_rejected(self, raw):
        with pytest.raises(FormatError):
            format_phone(raw)

    def test_country_code_is_configurable(self):
        assert format_phone("5512345678", country_code="1") == "+15512345678"

    def test_canonical_phone_accepts_prefixed_number(self):
        assert canonical_phone("+525512345678") == "+525512345678"
        assert canonical_phone("5512345678") == "+525512345678"

    def test_canonical_phone_rejects_foreign_prefix(self):
        # 12 digits without the configured country code are not a local number
        with pytest.raises(FormatError):
            canonical_phone("+445512345678")


def test_generated_codes_are_six_digits():
    codes = {generate_code() for _ in range(200)}
    assert all(len(c) == 6 and c.isdigit() and 100000 <= int(c) <= 999999 for c in codes)
    assert len(codes) > 1


class TestStars:

    @pytest.mark.parametrize("value, expected", [
        (4.6, 5), (4.5, 5), (4.4, 4), ("3", 3), (1, 1), (0.5, 1), (5, 5),
    ])
    def test_rounds_half_up(self, value, expected):
        assert round_stars(value) == expected

    @pytest.mark.parametrize("value", [0, 6, 5.5, 0.4, -1, "abc", True, "nan", float("nan"), "inf"])
    def test_out_of_range_or_not_a_number(self, value):
        with pytest.raises(ValidationError):
            round_stars(value)

    def test_average_formatting(self):
        assert format_average(None) == "0.0"
        assert format_average(4.25) == "4.3"
        assert format_average(4) == "4.0"


class TestStatus:

    def test_canonical_values(self):
        assert parse_status("en_proceso") is OrderStatus.IN_PROGRESS
        assert parse_status(" Cancelado ") is OrderStatus.CANCELLED

    def test_legacy_aliases(self):
        assert parse_status("pagado") is OrderStatus.IN_PROGRESS
        assert parse_status("completado") is OrderStatus.DONE

    @pytest.mark.parametrize("value", ["entregado", "", None])
    def test_unknown_status(self, value):
        with pytest.raises(ValidationError):
            parse_status(value)


class TestBase64Payload:

    def test_plain_base64_keeps_declared_mime(self):
        raw, mime = decode_base64_payload(base64.b64encode(b"pdf-bytes").decode(), "application/pdf")
        assert raw == b"pdf-bytes"
        assert mime == "application/pdf"

    def test_data_url_supplies_mime(self):
        payload = "data:image/png;base64," + base64.b64encode(b"png").decode()
        assert decode_base64_payload(payload) == (b"png", "image/png")

    def test_plain_base64_without_mime(self):
        assert decode_base64_payload(base64.b64encode(b"x").decode()) == (b"x", None)

    def test_invalid_base64(self):
        with pytest.raises(ValidationError):
            decode_base64_payload("no es base64!!")

    def test_to_data_url_defaults_to_jpeg(self):
        assert to_data_url(b"img", None) == "data:image/jpeg;base64,aW1n"
        assert to_data_url(None, "image/png") is None
