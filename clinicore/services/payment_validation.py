# FILE: clinicore/services/payment_validation.py
"""
Rules for manually reported payments (Sudan banks, mobile wallets, cash).

All checks raise HTTPException(400) with a payer-readable message.
"""
from __future__ import annotations

import re
from decimal import Decimal
from typing import Dict, Optional, Pattern

from fastapi import HTTPException

from clinicore.models.billing import PaymentMethod, PaymentProvider

SUDAN_PHONE_RE = re.compile(r"^\+2499[0-9]{8}$")

REFERENCE_RULES: Dict[PaymentProvider, Optional[Pattern[str]]] = {
    PaymentProvider.BANK_OF_KHARTOUM: re.compile(r"^BOK[0-9]{10,15}$"),
    PaymentProvider.FAISAL_ISLAMIC_BANK: re.compile(r"^FIB[0-9]{10,15}$"),
    PaymentProvider.OMDURMAN_NATIONAL_BANK: re.compile(r"^ONB[0-9]{10,15}$"),
    PaymentProvider.ZAIN_BEDE: re.compile(r"^[0-9]{10,15}$"),
    PaymentProvider.CASHI: re.compile(r"^CASHI[0-9]{8,12}$"),
    PaymentProvider.CASH_ON_DELIVERY: None,
    PaymentProvider.CASH_AT_BRANCH: None,
    PaymentProvider.OTHER: None,
}

# receipt upload required at or above these amounts; None = never
RECEIPT_THRESHOLDS: Dict[PaymentProvider, Optional[Decimal]] = {
    PaymentProvider.BANK_OF_KHARTOUM: Decimal("5000"),
    PaymentProvider.FAISAL_ISLAMIC_BANK: Decimal("5000"),
    PaymentProvider.OMDURMAN_NATIONAL_BANK: Decimal("5000"),
    PaymentProvider.ZAIN_BEDE: Decimal("3000"),
    PaymentProvider.CASHI: Decimal("3000"),
    PaymentProvider.CASH_ON_DELIVERY: None,
    PaymentProvider.CASH_AT_BRANCH: None,
    PaymentProvider.OTHER: Decimal("1000"),
}

MOBILE_WALLET_PROVIDERS = {PaymentProvider.ZAIN_BEDE, PaymentProvider.CASHI}

PROVIDER_METHODS: Dict[PaymentProvider, PaymentMethod] = {
    PaymentProvider.BANK_OF_KHARTOUM: PaymentMethod.BANK_TRANSFER,
    PaymentProvider.FAISAL_ISLAMIC_BANK: PaymentMethod.BANK_TRANSFER,
    PaymentProvider.OMDURMAN_NATIONAL_BANK: PaymentMethod.BANK_TRANSFER,
    PaymentProvider.ZAIN_BEDE: PaymentMethod.MOBILE_WALLET,
    PaymentProvider.CASHI: PaymentMethod.MOBILE_WALLET,
    PaymentProvider.CASH_ON_DELIVERY: PaymentMethod.CASH,
    PaymentProvider.CASH_AT_BRANCH: PaymentMethod.CASH,
    PaymentProvider.OTHER: PaymentMethod.BANK_TRANSFER,
}

INSTRUCTIONS: Dict[PaymentProvider, str] = {
    PaymentProvider.BANK_OF_KHARTOUM:
    "Transfer to Account: 1234567890\nSwift: BOKKSDKH\nEnter transaction reference starting with BOK",
    PaymentProvider.FAISAL_ISLAMIC_BANK:
    "Transfer to Account: 0987654321\nSwift: FIBSSDKH\nEnter transaction reference starting with FIB",
    PaymentProvider.OMDURMAN_NATIONAL_BANK:
    "Transfer to Account: 1122334455\nEnter transaction reference starting with ONB",
    PaymentProvider.ZAIN_BEDE:
    "Send to: +249123456789\nEnter wallet transaction ID\nProvide your wallet phone number",
    PaymentProvider.CASHI:
    "Pay at any Cashi agent\nEnter agent code and transaction ID\nProvide your wallet phone number",
    PaymentProvider.CASH_ON_DELIVERY: "Pay cash when you receive your order",
    PaymentProvider.CASH_AT_BRANCH: "Pay cash at our branch location",
    PaymentProvider.OTHER: "Contact support for payment instructions",
}


def _bad(msg: str) -> HTTPException:
    return HTTPException(status_code=400, detail=msg)


def is_valid_sudan_phone(phone: Optional[str]) -> bool:
    return bool(phone) and bool(SUDAN_PHONE_RE.fullmatch(phone))


def provider_method(provider: PaymentProvider) -> PaymentMethod:
    return PROVIDER_METHODS.get(provider, PaymentMethod.BANK_TRANSFER)


def validate_reference_id(provider: PaymentProvider, reference_id: str) -> None:
    rule = REFERENCE_RULES.get(provider)
    if rule is not None and not rule.fullmatch(reference_id or ""):
        raise _bad(f"Invalid reference ID format for {provider.value}. "
                   "Please check your transaction reference.")


def is_receipt_required(provider: PaymentProvider, amount) -> bool:
    threshold = RECEIPT_THRESHOLDS.get(provider)
    if threshold is None:
        return False
    return Decimal(str(amount)) >= threshold


def validate_wallet_phone(provider: PaymentProvider, wallet_phone: Optional[str]) -> None:
    if provider not in MOBILE_WALLET_PROVIDERS:
        return
    if not wallet_phone:
        raise _bad(f"Wallet phone number is required for {provider.value} payments")
    if not is_valid_sudan_phone(wallet_phone):
        raise _bad("Invalid Sudan mobile number format. Must be +2499XXXXXXXX")


def validate_payment_submission(
    provider: PaymentProvider,
    reference_id: str,
    amount,
    wallet_phone: Optional[str] = None,
    receipt_url: Optional[str] = None,
) -> None:
    """reference -> wallet phone -> receipt; first failure wins."""
    validate_reference_id(provider, reference_id)
    validate_wallet_phone(provider, wallet_phone)
    if is_receipt_required(provider, amount) and not receipt_url:
        raise _bad(f"Receipt upload is required for {provider.value} payments "
                   "above the threshold amount")


def payment_instructions(provider: PaymentProvider) -> str:
    return INSTRUCTIONS.get(provider, "Payment instructions not available")
