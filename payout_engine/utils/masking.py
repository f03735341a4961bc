"""Helpers for keeping account numbers out of logs"""


def mask_account(account_number: str | None, visible: int = 3) -> str:
    """Keep the first `visible` characters, e.g. '0123456789' -> '012***'"""
    if not account_number:
        return ""
    return account_number[:visible] + "***"
