"""Lead locale detection and per-locale message selection."""

from typing import Any, Dict

from leadflow.constants import DEFAULT_LOCALE, PHONE_PREFIX_LOCALES
from leadflow.core.logging import get_logger
from leadflow.models.nodes import MessagingConfig

logger = get_logger(__name__)


def detect_locale(lead: Dict[str, Any], default: str = DEFAULT_LOCALE) -> str:
    """Locale of a lead: explicit locale, form locale, phone prefix, then default."""
    if lead.get("locale"):
        return lead["locale"]
    raw_data = lead.get("raw_data") or {}
    if raw_data.get("locale"):
        return raw_data["locale"]
    phone = str(lead.get("phone") or "")
    for prefix, locale in PHONE_PREFIX_LOCALES:
        if phone.startswith(prefix):
            return locale
    return default


def translate_config(config: MessagingConfig, locale: str) -> MessagingConfig:
    """Copy of `config` with the locale's message and subject applied.

    Missing translation fields keep the default text; other fields are
    untouched.
    """
    translation = config.translations.get(locale)
    if translation is None:
        return config

    logger.info("Applying translation", locale=locale)
    return config.model_copy(update={
        "message": translation.message or config.message,
        "subject": translation.subject or config.subject,
    })
