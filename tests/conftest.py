"""Pytest configuration and shared fixtures."""

import os
import tempfile

# 测试环境：临时数据目录，不访问外部服务
os.environ["SURVEY_DATA_DIR"] = tempfile.mkdtemp(prefix="survey-test-")
os.environ["DASHSCOPE_API_KEY"] = ""
os.environ["ADMIN_WEBHOOK"] = ""

import pytest  # noqa: E402

from survey_mvp import database  # noqa: E402
from survey_mvp.local_store import LocalStorage  # noqa: E402
from survey_mvp.questions import FeedbackData  # noqa: E402


@pytest.fixture(autouse=True)
def db(tmp_path):
    """Fresh SQLite database per test."""
    database.configure_engine(f"sqlite:///{tmp_path / 'survey.db'}")
    database.init_db()
    yield
    database.engine.dispose()


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "device.json"))


@pytest.fixture
def pedagogy():
    """Factory for a fully answered pedagogy answer set."""

    def _make(subject="Analyse 1", score=4, comments=""):
        return FeedbackData(
            subject=subject, q1=score, q2=score, q3=score, q4=score, q5=score, comments=comments
        )

    return _make


@pytest.fixture
def environment():
    """Factory for a fully answered environment audit."""

    def _make(transport="Bus", laptop="Oui", rooms=3, resources=4):
        return FeedbackData(
            subject="ENVIRONNEMENT_GLOBAL",
            q6_jobs="Oui",
            q7_rooms=rooms,
            q8_resources=resources,
            q9_transport=transport,
            q10_laptop=laptop,
        )

    return _make


@pytest.fixture
def offline_services():
    """Analysis and notification stubs that always succeed."""
    calls = []

    def analyze(data):
        calls.append(("analyze", data.subject))
        return "Synthèse", None, 3

    def notify(data, analysis):
        calls.append(("notify", data.subject, analysis))
        return True, "ok"

    return {"analyze": analyze, "notify": notify, "calls": calls}
