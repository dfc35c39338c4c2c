from __future__ import annotations

import copy
from typing import Any, Iterable

from gateway.providers.models import Provider


_PROVIDER_PRESETS: dict[str, dict[str, Any]] = {
    "razorpay": {
        "display_name": "Razorpay",
        "category": "payment",
        "base_url": "https://api.razorpay.com/v1",
        "authentication": {"type": "basic"},
        "endpoints": {
            "orders": {"path": "/orders", "method": "POST"},
            "payments": {"path": "/payments", "method": "GET"},
            "customers": {"path": "/customers", "method": "POST"},
        },
        "health_check": {"endpoint": "payments", "expected_status": 200},
    },
    "stripe": {
        "display_name": "Stripe",
        "category": "payment",
        "base_url": "https://api.stripe.com/v1",
        "authentication": {"type": "bearer"},
        "endpoints": {
            "charges": {"path": "/charges", "method": "GET"},
            "create_payment_intent": {"path": "/payment_intents", "method": "POST"},
        },
        "health_check": {"endpoint": "charges", "expected_status": 200},
    },
    "twilio": {
        "display_name": "Twilio",
        "category": "sms",
        "base_url": "https://api.twilio.com/2010-04-01",
        "authentication": {"type": "basic"},
        "endpoints": {
            "accounts": {"path": "/Accounts.json", "method": "GET"},
            "send_sms": {"path": "/Accounts/{account_sid}/Messages.json", "method": "POST"},
            "get_message": {"path": "/Accounts/{account_sid}/Messages/{message_sid}.json", "method": "GET"},
        },
        "health_check": {"endpoint": "accounts", "expected_status": 200},
    },
    "textlocal": {
        "display_name": "TextLocal",
        "category": "sms",
        "base_url": "https://api.textlocal.in",
        "authentication": {"type": "api_key", "header_name": "X-API-Key"},
        "endpoints": {
            "balance": {"path": "/balance", "method": "GET"},
            "send": {"path": "/send", "method": "POST"},
        },
        "health_check": {"endpoint": "balance", "expected_status": 200},
    },
    "sendgrid": {
        "display_name": "SendGrid",
        "category": "email",
        "base_url": "https://api.sendgrid.com/v3",
        "authentication": {"type": "bearer"},
        "endpoints": {
            "send_email": {"path": "/mail/send", "method": "POST"},
            "templates": {"path": "/templates", "method": "GET"},
            "profile": {"path": "/user/profile", "method": "GET"},
        },
        "health_check": {"endpoint": "profile", "expected_status": 200},
    },
    "mailgun": {
        "display_name": "Mailgun",
        "category": "email",
        "base_url": "https://api.mailgun.net/v3",
        "authentication": {"type": "basic", "username": "api"},
        "endpoints": {
            "domains": {"path": "/domains", "method": "GET"},
            "send_email": {"path": "/{domain}/messages", "method": "POST"},
        },
        "health_check": {"endpoint": "domains", "expected_status": 200},
    },
    "google_maps": {
        "display_name": "Google Maps",
        "category": "maps",
        "base_url": "https://maps.googleapis.com/maps/api",
        "authentication": {"type": "api_key", "header_name": "X-Goog-Api-Key"},
        "endpoints": {
            "geocoding": {"path": "/geocode/json", "method": "GET"},
            "directions": {"path": "/directions/json", "method": "GET"},
            "distance_matrix": {"path": "/distancematrix/json", "method": "GET"},
        },
        "health_check": {"endpoint": "geocoding", "expected_status": 200},
    },
    "mapbox": {
        "display_name": "Mapbox",
        "category": "maps",
        "base_url": "https://api.mapbox.com",
        "authentication": {"type": "none"},
        "endpoints": {
            "geocoding": {"path": "/geocoding/v5/mapbox.places/{query}.json", "method": "GET"},
        },
        "health_check": {"endpoint": "geocoding", "expected_status": 200},
    },
    "fixer": {
        "display_name": "Fixer.io",
        "category": "currency",
        "base_url": "https://api.fixer.io",
        "authentication": {"type": "none"},
        "endpoints": {
            "latest": {"path": "/latest", "method": "GET"},
        },
        "health_check": {"endpoint": "latest", "expected_status": 200},
    },
}

DEFAULT_PROVIDER_KEYS = ("razorpay", "twilio", "sendgrid", "google_maps", "fixer")


def available_providers() -> list[str]:
    return sorted(_PROVIDER_PRESETS)


def provider_config(provider_key: str) -> dict[str, Any]:
    try:
        preset = _PROVIDER_PRESETS[provider_key]
    except KeyError:
        raise KeyError(f"No preset configuration for provider '{provider_key}'.") from None
    return copy.deepcopy(preset)


def preset_provider(provider_key: str, **overrides: Any) -> Provider:
    config = provider_config(provider_key)
    config.update(overrides)
    config.setdefault("name", provider_key)
    config.setdefault("type", "rest")
    return Provider.model_validate(config)


def initialize_defaults(existing: Iterable[str] = (), keys: Iterable[str] = DEFAULT_PROVIDER_KEYS) -> list[Provider]:
    """Build preset records for providers not configured yet.

    New records start inactive until credentials are filled in.
    """
    present = set(existing)
    return [preset_provider(key, is_active=False) for key in keys if key not in present]
