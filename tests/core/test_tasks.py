from __future__ import annotations

import pytest

from shekelstream.core.config import ConfigError
from shekelstream.core.tasks import CompanyType, build_sync_tasks, resolve_company


def test_resolve_company_is_case_insensitive() -> None:
    assert resolve_company("HAPOALIM") is CompanyType.HAPOALIM
    assert resolve_company("visacal") is CompanyType.VISA_CAL
    assert resolve_company("VISA_CAL") is CompanyType.VISA_CAL
    assert resolve_company("OTSARHAHAYAL") is CompanyType.OTSAR_HAHAYAL
    assert resolve_company("nosuchbank") is None


def test_build_sync_tasks_reads_credentials_and_chat_ids() -> None:
    # input
    env = {
        "USERS": "DANA, OMER",
        "DANA_HAPOALIM_USER_CODE": "AB1234",
        "DANA_HAPOALIM_PASSWORD": "secret",
        "DANA_ISRACARD_ID": "123456789",
        "DANA_ISRACARD_CARD6DIGITS": "123456",
        "DANA_ISRACARD_PASSWORD": "pw",
        "DANA_ISRACARD_TELEGRAM_CHANNEL_ID": "-200",
        "DANA_TELEGRAM_CHANNEL_ID": "-100",
        "OMER_MAX_USERNAME": "omer",
        "OMER_MAX_PASSWORD": "pw2",
        "UNRELATED": "x",
    }

    # act
    output = build_sync_tasks(env)

    # assert
    assert [(task.user, task.company) for task in output] == [
        ("DANA", CompanyType.HAPOALIM),
        ("DANA", CompanyType.ISRACARD),
        ("OMER", CompanyType.MAX),
    ]
    hapoalim, isracard, max_task = output
    assert hapoalim.credentials == {"userCode": "AB1234", "password": "secret"}
    assert hapoalim.chat_id == "-100"
    assert isracard.credentials == {
        "id": "123456789",
        "card6Digits": "123456",
        "password": "pw",
    }
    assert isracard.chat_id == "-200"
    assert max_task.credentials == {"username": "omer", "password": "pw2"}
    assert max_task.chat_id is None


def test_build_sync_tasks_skips_unknown_company() -> None:
    # input
    env = {
        "USERS": "DANA",
        "DANA_NOSUCHBANK_PASSWORD": "x",
        "DANA_LEUMI_USERNAME": "dana",
    }

    # act
    output = build_sync_tasks(env)

    # assert
    assert [task.company for task in output] == [CompanyType.LEUMI]


def test_build_sync_tasks_strict_rejects_unknown_company() -> None:
    env = {"USERS": "DANA", "DANA_NOSUCHBANK_PASSWORD": "x"}
    with pytest.raises(ConfigError, match="NOSUCHBANK"):
        build_sync_tasks(env, strict=True)


def test_build_sync_tasks_without_users_is_empty() -> None:
    assert build_sync_tasks({"DANA_LEUMI_USERNAME": "dana"}) == []


def test_sync_task_repr_hides_credentials() -> None:
    env = {"USERS": "DANA", "DANA_LEUMI_PASSWORD": "hunter2"}
    (task,) = build_sync_tasks(env)
    assert "hunter2" not in repr(task)
