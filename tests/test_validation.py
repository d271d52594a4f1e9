import pytest

from accounts.errors import InvalidAge, InvalidEmail, InvalidInput, InvalidName
from accounts.validation import (
    validate_age,
    validate_email,
    validate_name,
    validate_user,
    validate_user_id,
)


@pytest.mark.parametrize("name", [None, "", "   "])
def test_blank_names_are_rejected(name) -> None:
    with pytest.raises(InvalidName, match="Name cannot be empty"):
        validate_name(name)


def test_name_length_limit() -> None:
    validate_name("a" * 100)
    with pytest.raises(InvalidName, match="cannot exceed 100"):
        validate_name("a" * 101)


@pytest.mark.parametrize(
    "email",
    ["alice@example.com", "first.last+tag@mail.example.org", "a_b-c@sub.domain.io"],
)
def test_valid_emails_pass(email: str) -> None:
    validate_email(email)


@pytest.mark.parametrize(
    "email",
    ["plainaddress", "missing-at.example.com", "user@nodot", "user@domain.c", "us er@example.com", "user@exa mple.com"],
)
def test_malformed_emails_are_rejected(email: str) -> None:
    with pytest.raises(InvalidEmail, match="Invalid email format"):
        validate_email(email)


def test_email_blank_and_length() -> None:
    with pytest.raises(InvalidEmail, match="Email cannot be empty"):
        validate_email("  ")
    too_long = "a" * 90 + "@example.com"
    with pytest.raises(InvalidEmail, match="cannot exceed 100"):
        validate_email(too_long)


@pytest.mark.parametrize("age", [0, 42, 150])
def test_ages_within_range(age: int) -> None:
    validate_age(age)


@pytest.mark.parametrize("age", [-1, 151, 1000])
def test_ages_out_of_range(age: int) -> None:
    with pytest.raises(InvalidAge, match="between 0 and 150"):
        validate_age(age)


@pytest.mark.parametrize("age", ["30", 30.0, True])
def test_non_integer_ages(age) -> None:
    with pytest.raises(InvalidAge, match="must be an integer"):
        validate_age(age)


def test_missing_age() -> None:
    with pytest.raises(InvalidAge, match="cannot be null"):
        validate_age(None)


def test_user_fields_are_checked_in_name_email_age_order() -> None:
    with pytest.raises(InvalidName):
        validate_user("", "not-an-email", -1)
    with pytest.raises(InvalidEmail):
        validate_user("Alice", "not-an-email", -1)
    with pytest.raises(InvalidAge):
        validate_user("Alice", "alice@example.com", -1)


def test_all_validation_errors_are_invalid_input() -> None:
    for error in (InvalidName, InvalidEmail, InvalidAge):
        assert issubclass(error, InvalidInput)


@pytest.mark.parametrize("user_id", [None, 0, -5, "7", True])
def test_invalid_user_ids(user_id) -> None:
    with pytest.raises(InvalidInput):
        validate_user_id(user_id)


def test_valid_user_id() -> None:
    assert validate_user_id(12) == 12


@pytest.mark.parametrize("user_id", [2**63, 2**70])
def test_user_ids_beyond_storage_range(user_id: int) -> None:
    with pytest.raises(InvalidInput, match="out of range"):
        validate_user_id(user_id)

    assert validate_user_id(2**63 - 1) == 2**63 - 1
