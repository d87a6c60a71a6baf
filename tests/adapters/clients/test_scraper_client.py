from __future__ import annotations

from datetime import UTC, datetime
import json
import subprocess
from typing import Any
from unittest.mock import patch

import pytest

from shekelstream.adapters.clients.scraper import ScraperError, SubprocessScraperClient
from shekelstream.core.tasks import CompanyType


def create_completed(
    stdout: str, *, returncode: int = 0, stderr: str = ""
) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(
        args=["node"], returncode=returncode, stdout=stdout, stderr=stderr
    )


def scrape(client: SubprocessScraperClient) -> Any:
    return client.scrape(
        company=CompanyType.LEUMI,
        credentials={"username": "dana", "password": "pw"},
        start_date=datetime(2024, 3, 1, tzinfo=UTC),
    )


def test_build_request_disables_timeout_and_installment_combining() -> None:
    # input
    client = SubprocessScraperClient(
        ["node", "bridge.mjs"], browser_executable_path="/usr/bin/chromium"
    )

    # act
    output = client.build_request(
        company=CompanyType.VISA_CAL,
        credentials={"username": "dana"},
        start_date=datetime(2024, 3, 1, tzinfo=UTC),
    )

    # assert
    assert output == {
        "companyId": "visaCal",
        "credentials": {"username": "dana"},
        "startDate": "2024-03-01T00:00:00+00:00",
        "combineInstallments": False,
        "timeout": 0,
        "executablePath": "/usr/bin/chromium",
    }


def test_scrape_parses_successful_result() -> None:
    # input
    payload = {
        "success": True,
        "accounts": [
            {
                "accountNumber": "12-345",
                "transactions": [
                    {
                        "date": "2024-03-01T22:00:00.000Z",
                        "processedDate": "2024-03-01T22:00:00.000Z",
                        "originalAmount": -10,
                        "originalCurrency": "ILS",
                        "chargedAmount": -10,
                        "description": "קפה",
                        "status": "pending",
                    }
                ],
            }
        ],
    }
    client = SubprocessScraperClient(["node", "bridge.mjs"])

    # act
    with patch(
        "shekelstream.adapters.clients.scraper.subprocess.run",
        return_value=create_completed(json.dumps(payload)),
    ) as run:
        output = scrape(client)

    # assert
    assert output.success is True
    (account,) = output.accounts
    assert account.account_number == "12-345"
    assert account.txns[0].charged_amount == -10.0
    assert account.txns[0].status == "pending"
    assert run.call_args.kwargs["encoding"] == "utf-8"
    sent = json.loads(run.call_args.kwargs["input"])
    assert sent["companyId"] == "leumi"
    assert "executablePath" not in sent


def test_scrape_returns_reported_failure() -> None:
    # input
    payload = {
        "success": False,
        "errorType": "INVALID_PASSWORD",
        "errorMessage": "bad password",
    }
    client = SubprocessScraperClient(["node", "bridge.mjs"])

    # act
    with patch(
        "shekelstream.adapters.clients.scraper.subprocess.run",
        return_value=create_completed(json.dumps(payload)),
    ):
        output = scrape(client)

    # assert
    assert output.success is False
    assert output.error_type == "INVALID_PASSWORD"
    assert output.accounts == []


def test_scrape_nonzero_exit_raises() -> None:
    client = SubprocessScraperClient(["node", "bridge.mjs"])
    with patch(
        "shekelstream.adapters.clients.scraper.subprocess.run",
        return_value=create_completed("", returncode=2, stderr="Cannot find module"),
    ):
        with pytest.raises(ScraperError, match="Cannot find module"):
            scrape(client)


def test_scrape_malformed_output_raises() -> None:
    client = SubprocessScraperClient(["node", "bridge.mjs"])
    with patch(
        "shekelstream.adapters.clients.scraper.subprocess.run",
        return_value=create_completed("not json"),
    ):
        with pytest.raises(ScraperError, match="JSON"):
            scrape(client)


def test_scrape_missing_command_raises() -> None:
    client = SubprocessScraperClient(["definitely-not-a-real-binary-xyz"])
    with patch(
        "shekelstream.adapters.clients.scraper.subprocess.run",
        side_effect=FileNotFoundError("definitely-not-a-real-binary-xyz"),
    ):
        with pytest.raises(ScraperError, match="Failed to start scraper"):
            scrape(client)


def test_scrape_undecodable_output_raises() -> None:
    client = SubprocessScraperClient(["node", "bridge.mjs"])
    with patch(
        "shekelstream.adapters.clients.scraper.subprocess.run",
        side_effect=UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"),
    ):
        with pytest.raises(ScraperError, match="UTF-8"):
            scrape(client)
