from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
import os

from loguru import logger

from shekelstream.core.config import ConfigError


class CompanyType(str, Enum):
    """Institutions supported by the scraper bridge."""

    HAPOALIM = "hapoalim"
    LEUMI = "leumi"
    DISCOUNT = "discount"
    MERCANTILE = "mercantile"
    MIZRAHI = "mizrahi"
    OTSAR_HAHAYAL = "otsarHahayal"
    VISA_CAL = "visaCal"
    MAX = "max"
    ISRACARD = "isracard"
    AMEX = "amex"
    UNION = "union"
    BEINLEUMI = "beinleumi"
    MASSAD = "massad"
    YAHAV = "yahav"
    BEYAHAD_BISHVILHA = "beyahadBishvilha"
    ONE_ZERO = "oneZero"
    BEHATSDAA = "behatsdaa"
    PAGI = "pagi"


# Config keys are matched against both the enum name and its value,
# lower-cased, with underscores ignored.
_COMPANY_LOOKUP: dict[str, CompanyType] = {}
for _company in CompanyType:
    _COMPANY_LOOKUP[_company.name.lower().replace("_", "")] = _company
    _COMPANY_LOOKUP[_company.value.lower()] = _company

CREDENTIAL_FIELDS: dict[str, str] = {
    "ID": "id",
    "NUM": "num",
    "USERNAME": "username",
    "USER_CODE": "userCode",
    "PASSWORD": "password",
    "CARD6DIGITS": "card6Digits",
    "NATIONAL_ID": "nationalID",
}


@dataclass(frozen=True)
class SyncTask:
    """One (user, company) pair to synchronize."""

    user: str
    company: CompanyType
    credentials: dict[str, str] = field(repr=False, compare=False)
    chat_id: str | None = None

    @property
    def key(self) -> dict[str, str]:
        """Task identity for structured log context."""
        return {"user": self.user, "company": self.company.value}


def resolve_company(name: str) -> CompanyType | None:
    return _COMPANY_LOOKUP.get(name.lower().replace("_", ""))


def build_sync_tasks(
    env: Mapping[str, str] | None = None,
    *,
    strict: bool = False,
) -> list[SyncTask]:
    """Derive sync tasks from `USERS` and `<USER>_<COMPANY>_<FIELD>` variables.

    Chat ids come from `<USER>_<COMPANY>_TELEGRAM_CHANNEL_ID`, falling back to
    `<USER>_TELEGRAM_CHANNEL_ID`.

    Args:
        env: Environment mapping, defaults to `os.environ`
        strict: Raise on unknown company names instead of logging and skipping

    Returns:
        Tasks in user order, then first-seen company order

    Raises:
        ConfigError: If `strict` and a company name is not recognized
    """
    env = os.environ if env is None else env
    tasks: list[SyncTask] = []

    users = [user.strip() for user in env.get("USERS", "").split(",") if user.strip()]
    for user in users:
        prefix = f"{user}_"
        companies: list[str] = []
        for name in env:
            if not name.startswith(prefix) or name.startswith(f"{user}_TELEGRAM"):
                continue
            company = name[len(prefix) :].split("_")[0]
            if company and company not in companies:
                companies.append(company)

        for company in companies:
            company_type = resolve_company(company)
            if company_type is None:
                if strict:
                    raise ConfigError(f"Unknown company: {company}")
                logger.bind(user=user).error("Unknown company: {}", company)
                continue

            credentials = {
                credential_key: env[f"{user}_{company}_{suffix}"]
                for suffix, credential_key in CREDENTIAL_FIELDS.items()
                if env.get(f"{user}_{company}_{suffix}")
            }
            chat_id = env.get(f"{user}_{company}_TELEGRAM_CHANNEL_ID") or env.get(
                f"{user}_TELEGRAM_CHANNEL_ID"
            )
            tasks.append(
                SyncTask(
                    user=user,
                    company=company_type,
                    credentials=credentials,
                    chat_id=chat_id or None,
                )
            )

    return tasks
