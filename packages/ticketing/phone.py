from __future__ import annotations

import re
from typing import Mapping

from .models import PaymentNetwork

_LOCAL_PREFIXES: Mapping[PaymentNetwork, tuple[str, ...]] = {
    PaymentNetwork.MTN: ("077", "078", "076"),
    PaymentNetwork.AIRTEL: ("070", "075"),
}

_PATTERNS: Mapping[PaymentNetwork, re.Pattern[str]] = {
    PaymentNetwork.MTN: re.compile(r"^(?:0(?:77|78|76)\d{7}|\+256(?:77|78|76)\d{7})$"),
    PaymentNetwork.AIRTEL: re.compile(r"^(?:0(?:70|75)\d{7}|\+256(?:70|75)\d{7})$"),
}

DEFAULT_NETWORK = PaymentNetwork.MTN


def _international_prefixes(network: PaymentNetwork) -> tuple[str, ...]:
    return tuple(f"+256{prefix[1:]}" for prefix in _LOCAL_PREFIXES[network])


def detect_network(phone_number: str) -> PaymentNetwork:
    """Infer the network from the number's prefix, defaulting to MTN."""

    number = phone_number.strip()
    for network in (PaymentNetwork.MTN, PaymentNetwork.AIRTEL):
        if number.startswith(_LOCAL_PREFIXES[network] + _international_prefixes(network)):
            return network
    return DEFAULT_NETWORK


def is_valid_for_network(phone_number: str, network: PaymentNetwork) -> bool:
    return bool(_PATTERNS[network].match(phone_number.strip()))


def resolve_network(phone_number: str, selected: PaymentNetwork | None) -> tuple[PaymentNetwork, bool]:
    """Return the network to charge and whether the number is valid for it."""

    number = (phone_number or "").strip()
    if not number:
        return selected or DEFAULT_NETWORK, False
    network = selected or detect_network(number)
    return network, is_valid_for_network(number, network)
