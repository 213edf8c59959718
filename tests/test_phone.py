import re

import pytest

from frontdesk.phone import (
    is_self_reference,
    new_callback_reference,
    normalize_callback_number,
    normalize_contact_number,
)

CALLER = "+14155551212"


class TestContactNumber:
    @pytest.mark.parametrize("spoken", ["this number", "same number", "my phone", "This Number", "the number I'm calling from"])
    def test_self_reference_becomes_caller_number(self, spoken):
        assert normalize_contact_number(spoken, CALLER) == CALLER

    def test_literal_number_passes_through(self):
        assert normalize_contact_number("+14155551212", "+19995550000") == "+14155551212"

    def test_empty_uses_caller_number(self):
        assert normalize_contact_number("", CALLER) == CALLER
        assert normalize_contact_number(None, CALLER) == CALLER

    def test_curly_apostrophe(self):
        assert normalize_contact_number("the number I’m calling from", CALLER) == CALLER

    def test_other_text_is_kept(self):
        # Only callback numbers are validated as phone characters
        assert normalize_contact_number("ext 42", CALLER) == "ext 42"


class TestCallbackNumber:
    def test_literal_number_passes_through(self):
        assert normalize_callback_number("(415) 555-0000", CALLER) == "(415) 555-0000"

    def test_calling_from_phrase(self):
        assert normalize_callback_number("calling from", CALLER) == CALLER

    def test_too_long_uses_caller_number(self):
        assert normalize_callback_number("+1 415 555 1212 555 1212 99", CALLER) == CALLER

    def test_non_phone_characters_use_caller_number(self):
        assert normalize_callback_number("tomorrow", CALLER) == CALLER

    def test_empty_uses_caller_number(self):
        assert normalize_callback_number(None, CALLER) == CALLER


class TestSelfReference:
    def test_digits_are_not_self_reference(self):
        assert is_self_reference("4155551212") is False

    def test_empty_is_not_self_reference(self):
        assert is_self_reference("") is False


def test_callback_reference_format():
    ref = new_callback_reference()
    assert re.fullmatch(r"CB[A-Z0-9]{8}", ref)
    assert new_callback_reference() != ref
