import datetime as dt
import pathlib
import sys
import uuid
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi import FastAPI, Request
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from app.app_logging import init_logging
from app.models import Base, Business
from app.models.session import create_schema, get_sessionmaker


class FakeCompletions:
    """Imitates ``client.chat.completions`` of the OpenAI SDK."""

    def __init__(self, contents: list[Any]) -> None:
        self.contents = list(contents)
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        content = self.contents.pop(0)
        if isinstance(content, BaseException):
            raise content
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def openai_client_factory():
    """Build objects shaped like ``OpenAI()`` that answer with canned contents."""

    def _create(*contents: Any) -> SimpleNamespace:
        completions = FakeCompletions(list(contents))
        return SimpleNamespace(chat=SimpleNamespace(completions=completions))

    return _create


@pytest.fixture
def tenant_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def today() -> dt.date:
    return dt.date(2024, 5, 1)


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app


@pytest.fixture
def session_factory(tmp_path_factory: pytest.TempPathFactory) -> sessionmaker[Session]:
    db_path = tmp_path_factory.mktemp("dispatch-db") / "dispatch.db"
    factory = get_sessionmaker(database_url=f"sqlite+pysqlite:///{db_path}")
    create_schema(factory)

    yield factory

    engine = factory.kw["bind"]
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def business_factory(session_factory):
    def _create(name: str = "Acme Pizza", **fields: Any) -> uuid.UUID:
        with session_factory.begin() as session:
            business = Business(name=name, **fields)
            session.add(business)
            session.flush()
            return business.id

    return _create
