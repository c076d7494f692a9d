"""ABOUTME: Unit tests for identifiers, codes and input shape checks
ABOUTME: Tests id and code alphabets and lengths, and email and password validation"""

import pytest

from warden.domain.value_objects import (
    CODE_ALPHABET,
    ID_ALPHABET,
    generate_code,
    generate_id,
    generate_recovery_code,
    validate_email,
    validate_password_input,
)


class TestGenerators:
    def test_id_shape(self):
        user_id = generate_id()
        assert len(user_id) == 24
        assert set(user_id) <= set(ID_ALPHABET)

    def test_ids_are_unique(self):
        assert len({generate_id() for _ in range(200)}) == 200

    def test_code_shape(self):
        code = generate_code()
        assert len(code) == 8
        assert set(code) <= set(CODE_ALPHABET)

    def test_recovery_code_shape(self):
        code = generate_recovery_code()
        assert len(code) == 8
        assert set(code) <= set(CODE_ALPHABET)

    def test_alphabets_skip_confusable_characters(self):
        for character in "0O1l":
            assert character not in ID_ALPHABET
        for character in "0O1I":
            assert character not in CODE_ALPHABET


class TestValidateEmail:
    @pytest.mark.parametrize("email", ["user@example.com", "first.last+tag@sub.example.org"])
    def test_valid(self, email):
        validate_email(email)

    @pytest.mark.parametrize("email", ["", "no-at-sign", "user@", "@example.com", "a b@example.com"])
    def test_invalid(self, email):
        with pytest.raises(ValueError, match="Invalid email address"):
            validate_email(email)

    def test_too_long(self):
        with pytest.raises(ValueError):
            validate_email("a" * 250 + "@example.com")


class TestValidatePasswordInput:
    def test_valid(self):
        validate_password_input("x" * 127)

    def test_empty(self):
        with pytest.raises(ValueError, match="empty"):
            validate_password_input("")

    def test_too_long(self):
        with pytest.raises(ValueError, match="127"):
            validate_password_input("x" * 128)
