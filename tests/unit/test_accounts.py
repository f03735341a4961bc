"""Unit tests for bank account resolution"""

from payout_engine.domain.accounts import AccountResolver, bank_name_for, resolve_account


def test_valid_nigerian_account_resolves_bank_name():
    result = resolve_account("0123456789", "044", "NGN")
    assert result.valid
    assert result.bank_name == "Access Bank"
    assert result.account_name is None  # verified later by the provider


def test_nigerian_account_must_be_ten_digits():
    assert not resolve_account("012345678", "044", "NGN").valid
    assert not resolve_account("01234567890", "044", "NGN").valid
    result = resolve_account("01234ABCDE", "044", "NGN")
    assert not result.valid
    assert "10 digits" in result.error


def test_ghana_and_kenya_minimum_length():
    assert resolve_account("1234567890123", "040100", "GHS").bank_name == "GCB Bank"
    assert not resolve_account("123456789", "040100", "GHS").valid
    assert resolve_account("1234567890", "68", "KES").bank_name == "Equity Bank"
    assert not resolve_account("12345", "68", "KES").valid


def test_unknown_bank_code_gets_generic_name():
    assert bank_name_for("999", "NGN") == "Bank 999"
    assert resolve_account("12345678", "026009593", "USD").bank_name == "Bank 026009593"


def test_unsupported_currency_and_missing_fields():
    assert not resolve_account("0123456789", "044", "JPY").valid
    assert resolve_account("", "044", "NGN").error == "Account number is required"
    assert resolve_account("0123456789", " ", "NGN").error == "Bank code is required"


def test_resolver_wraps_function():
    assert AccountResolver().resolve("0123456789", "058", "NGN").bank_name == "GTBank"
