"""Bank account structural validation and bank-name resolution"""

from payout_engine.domain.models import SUPPORTED_CURRENCIES, AccountResolution

NIGERIAN_BANKS = {
    "044": "Access Bank",
    "058": "GTBank",
    "057": "Zenith Bank",
    "011": "First Bank",
    "033": "UBA",
    "050": "Ecobank",
    "214": "FCMB",
    "070": "Fidelity Bank",
    "221": "Stanbic IBTC",
    "232": "Sterling Bank",
    "032": "Union Bank",
    "035": "Wema Bank",
    "082": "Keystone Bank",
    "076": "Polaris Bank",
    "030": "Heritage Bank",
    "023": "Citibank",
    "101": "Providus Bank",
    "090267": "Kuda Bank",
}

GHANAIAN_BANKS = {
    "280100": "Access Bank Ghana",
    "130100": "Ecobank Ghana",
    "240100": "Fidelity Bank Ghana",
    "170100": "First Atlantic Bank",
    "040100": "GCB Bank",
    "230100": "GTBank Ghana",
    "020100": "Standard Chartered Ghana",
    "190100": "Stanbic Bank Ghana",
    "120100": "Zenith Bank Ghana",
}

KENYAN_BANKS = {
    "68": "Equity Bank",
    "01": "KCB Bank",
    "11": "Co-operative Bank",
    "03": "Absa Bank Kenya",
    "02": "Standard Chartered Kenya",
    "07": "NCBA Bank",
    "63": "Diamond Trust Bank",
    "31": "Stanbic Bank Kenya",
    "70": "Family Bank",
    "72": "Gulf African Bank",
}

BANKS_BY_CURRENCY = {
    "NGN": NIGERIAN_BANKS,
    "GHS": GHANAIAN_BANKS,
    "KES": KENYAN_BANKS,
}

NUBAN_LENGTH = 10  # Nigerian account numbers
MIN_ACCOUNT_LENGTH = {"GHS": 10, "KES": 10}


def bank_name_for(bank_code: str, currency: str) -> str:
    """Static lookup; unknown codes resolve to a generic name"""
    return BANKS_BY_CURRENCY.get(currency, {}).get(bank_code, f"Bank {bank_code}")


def resolve_account(account_number: str, bank_code: str, currency: str) -> AccountResolution:
    """
    Validate account structure for the currency and resolve the bank name.

    The account holder name is not verified here; the provider checks it
    when the recipient is created.
    """
    account_number = (account_number or "").strip()
    bank_code = (bank_code or "").strip()

    if currency not in SUPPORTED_CURRENCIES:
        return AccountResolution(valid=False, error=f"Unsupported currency: {currency}")
    if not account_number:
        return AccountResolution(valid=False, error="Account number is required")
    if not bank_code:
        return AccountResolution(valid=False, error="Bank code is required")

    if currency == "NGN" and not (account_number.isdigit() and len(account_number) == NUBAN_LENGTH):
        return AccountResolution(
            valid=False,
            error=f"Invalid Nigerian account number. Must be {NUBAN_LENGTH} digits.",
        )

    min_length = MIN_ACCOUNT_LENGTH.get(currency)
    if min_length is not None and len(account_number) < min_length:
        return AccountResolution(
            valid=False,
            error=f"Invalid account number for {currency}. Must be at least {min_length} characters.",
        )

    return AccountResolution(valid=True, bank_name=bank_name_for(bank_code, currency))


class AccountResolver:
    """Stateless resolver; wraps `resolve_account` for injection"""

    def resolve(self, account_number: str, bank_code: str, currency: str) -> AccountResolution:
        return resolve_account(account_number, bank_code, currency)
