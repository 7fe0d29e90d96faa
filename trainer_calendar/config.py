from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BACKENDS = ("local", "firestore")


def _parse_int(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected an integer.") from e


def _parse_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", ""}


def _parse_sizes(raw: str) -> tuple[int, ...]:
    # PACKAGE_SIZES=1,5,10,20
    result: list[int] = []
    for part in (p.strip() for p in raw.split(",")):
        if not part:
            continue
        try:
            size = int(part)
        except ValueError as e:
            raise RuntimeError(f"Invalid PACKAGE_SIZES value: {part!r}. Expected integers.") from e
        if size <= 0:
            raise RuntimeError(f"Invalid PACKAGE_SIZES value: {size}. Sizes must be positive.")
        if size not in result:
            result.append(size)

    if not result:
        raise RuntimeError("PACKAGE_SIZES is empty. Provide at least one package size.")
    return tuple(sorted(result))


def _parse_emails(raw: str) -> frozenset[str]:
    return frozenset(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    package_sizes: tuple[int, ...] = (1, 5, 10, 20)

    # Bookable grid: FIRST_HOUR .. FIRST_HOUR + HOUR_COUNT - 1, base zone hours.
    first_hour: int = 9
    hour_count: int = 15

    # Second column of hour labels; static offset, no tz database.
    secondary_tz_offset: int = -4
    base_zone_label: str = "TH"
    secondary_zone_label: str = "RU"

    # 0 = Monday ... 6 = Sunday (date.weekday() numbering)
    week_start: int = 0

    store_backend: str = "local"
    store_path: str = "calendar.json"
    gcp_project: str | None = None

    allow_concurrent_packages: bool = False
    renumber_on_cancel: bool = True

    admin_emails: frozenset[str] = frozenset()

    assistant_enabled: bool = False
    openai_model: str = "gpt-4o-mini"

    @property
    def hours(self) -> tuple[int, ...]:
        return tuple(range(self.first_hour, self.first_hour + self.hour_count))


def load_settings(dotenv_path: str | None = None) -> Settings:
    # .env in the working directory; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    first_hour = _parse_int("FIRST_HOUR", "9")
    hour_count = _parse_int("HOUR_COUNT", "15")
    if not 0 <= first_hour <= 23:
        raise RuntimeError("FIRST_HOUR must be within 0..23")
    if hour_count < 1 or first_hour + hour_count > 24:
        raise RuntimeError("HOUR_COUNT must be >= 1 and the range must end before midnight")

    week_start = _parse_int("WEEK_START", "0")
    if not 0 <= week_start <= 6:
        raise RuntimeError("WEEK_START must be within 0..6 (0 = Monday)")

    store_backend = os.getenv("STORE_BACKEND", "local").strip().lower()
    if store_backend not in BACKENDS:
        raise RuntimeError(f"Invalid STORE_BACKEND value: {store_backend!r}. Expected one of {BACKENDS}.")

    settings = Settings(
        package_sizes=_parse_sizes(os.getenv("PACKAGE_SIZES", "1,5,10,20")),
        first_hour=first_hour,
        hour_count=hour_count,
        secondary_tz_offset=_parse_int("SECONDARY_TZ_OFFSET", "-4"),
        base_zone_label=os.getenv("BASE_ZONE_LABEL", "TH"),
        secondary_zone_label=os.getenv("SECONDARY_ZONE_LABEL", "RU"),
        week_start=week_start,
        store_backend=store_backend,
        store_path=os.getenv("STORE_PATH", "calendar.json"),
        gcp_project=os.getenv("GCP_PROJECT") or None,
        allow_concurrent_packages=_parse_flag("ALLOW_CONCURRENT_PACKAGES", "0"),
        renumber_on_cancel=_parse_flag("RENUMBER_ON_CANCEL", "1"),
        admin_emails=_parse_emails(os.getenv("ADMIN_EMAILS", "")),
        assistant_enabled=_parse_flag("ASSISTANT_ENABLED", "0"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
    )
    logger.info(
        "Settings loaded: backend=%s hours=%s..%s sizes=%s",
        settings.store_backend,
        settings.hours[0],
        settings.hours[-1],
        settings.package_sizes,
    )
    return settings


def get_openai_key(settings: Settings) -> str:
    """
    Return the OpenAI API key for the chat assistant.

    ``OPENAI_API_KEY`` wins when set; otherwise the ``openai-key`` secret is
    read from Google Secret Manager in the configured (or ADC) project.
    """
    key = os.getenv("OPENAI_API_KEY")
    if key:
        return key

    import google.auth
    from google.cloud import secretmanager

    _, project_id = google.auth.default()
    project_id = settings.gcp_project or project_id
    if not project_id:
        raise RuntimeError("GCP project ID not found")
    sm = secretmanager.SecretManagerServiceClient()
    name = f"projects/{project_id}/secrets/openai-key/versions/latest"
    return sm.access_secret_version(name=name).payload.data.decode()
