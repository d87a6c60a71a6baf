from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
import json
import subprocess
from typing import Any, Protocol, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from shekelstream.core.tasks import CompanyType


class ScraperError(Exception):
    """Raised when the scraper bridge cannot be run or returns garbage."""


class ScraperBaseModel(BaseModel):
    """Shared base for scraper payload models with a short parse alias."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)


class ScrapedTransaction(ScraperBaseModel):
    type: str = "normal"
    identifier: str | int | None = None
    date: str
    processed_date: str = Field(alias="processedDate")
    original_amount: float = Field(alias="originalAmount")
    original_currency: str | None = Field(default=None, alias="originalCurrency")
    charged_amount: float = Field(alias="chargedAmount")
    description: str
    memo: str | None = None
    installments: dict[str, Any] | None = None
    status: str = "completed"


class ScrapedAccount(ScraperBaseModel):
    account_number: str = Field(alias="accountNumber")
    txns: list[ScrapedTransaction] = Field(
        default_factory=list,
        validation_alias=AliasChoices("txns", "transactions"),
    )


class ScrapeResult(ScraperBaseModel):
    success: bool
    accounts: list[ScrapedAccount] = Field(default_factory=list)
    error_type: str | None = Field(default=None, alias="errorType")
    error_message: str | None = Field(default=None, alias="errorMessage")


class ScraperClient(Protocol):
    """Fetches raw transactions for one company account."""

    def scrape(
        self,
        *,
        company: CompanyType,
        credentials: dict[str, str],
        start_date: datetime,
    ) -> ScrapeResult: ...


class SubprocessScraperClient:
    """Runs the Node scraper bridge as a child process.

    The bridge reads one JSON request from stdin and writes one JSON
    `ScrapeResult` to stdout. Scraping has no deadline: the process is waited
    on for as long as it takes.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        browser_executable_path: str | None = None,
    ) -> None:
        self._command = list(command)
        self._browser_executable_path = browser_executable_path

    def build_request(
        self,
        *,
        company: CompanyType,
        credentials: dict[str, str],
        start_date: datetime,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "companyId": company.value,
            "credentials": credentials,
            "startDate": start_date.isoformat(),
            "combineInstallments": False,
            "timeout": 0,
        }
        if self._browser_executable_path:
            request["executablePath"] = self._browser_executable_path
        return request

    def scrape(
        self,
        *,
        company: CompanyType,
        credentials: dict[str, str],
        start_date: datetime,
    ) -> ScrapeResult:
        request = self.build_request(
            company=company, credentials=credentials, start_date=start_date
        )
        try:
            completed = subprocess.run(  # noqa: S603 - command comes from config
                self._command,
                input=json.dumps(request),
                capture_output=True,
                encoding="utf-8",
                check=False,
            )
        except OSError as e:
            raise ScraperError(f"Failed to start scraper {self._command!r}: {e}") from e
        except UnicodeDecodeError as e:
            raise ScraperError(f"Scraper output is not valid UTF-8: {e}") from e

        if completed.returncode != 0:
            raise ScraperError(
                f"Scraper exited with code {completed.returncode}: "
                f"{completed.stderr.strip()[:500]}"
            )
        return self._parse_output(completed.stdout)

    def _parse_output(self, stdout: str) -> ScrapeResult:
        try:
            return ScrapeResult.parse(json.loads(stdout))
        except json.JSONDecodeError as e:
            raise ScraperError(
                f"Failed to parse scraper output as JSON: {e}: {stdout[:200]}"
            ) from e
        except ValidationError as e:
            raise ScraperError(f"Unexpected scraper output shape: {e}") from e
