"""Tests for the demo business seeding helpers."""

from __future__ import annotations

import json

import pytest
from sqlalchemy import select

import seed
from app.models import Business, BusinessFaq
from seed import DEFAULT_FAQS, SeedConfig, provision_business, seed_faqs


def _config(db_url: str = "sqlite://", **overrides) -> SeedConfig:
    return SeedConfig(db_url=db_url, **overrides)


def test_provision_business_is_idempotent(session_factory) -> None:
    config = _config(name="Luigi's", timezone="Europe/Rome", tone_name="formal")

    first = provision_business(session_factory, config)
    second = provision_business(session_factory, config)

    assert first == second
    with session_factory() as session:
        businesses = session.scalars(select(Business)).all()
    assert len(businesses) == 1
    assert businesses[0].timezone == "Europe/Rome"
    assert businesses[0].tone_name == "formal"


def test_seed_faqs_skips_existing_questions(session_factory) -> None:
    tenant_id = provision_business(session_factory, _config())

    assert seed_faqs(session_factory, tenant_id, DEFAULT_FAQS) == len(DEFAULT_FAQS)
    extra = [("Can I pay by card?", "Yes, all major cards.")]
    assert seed_faqs(session_factory, tenant_id, [*DEFAULT_FAQS, *extra]) == 1

    with session_factory() as session:
        questions = session.scalars(
            select(BusinessFaq.question).where(BusinessFaq.tenant_id == tenant_id)
        ).all()
    assert sorted(questions) == sorted(q for q, _ in [*DEFAULT_FAQS, *extra])


def test_load_faqs_ignores_incomplete_entries(tmp_path) -> None:
    path = tmp_path / "faqs.json"
    path.write_text(
        json.dumps(
            [
                {"question": " Parking? ", "answer": "Free parking behind the shop."},
                {"question": "No answer"},
                {"answer": "No question"},
            ]
        ),
        encoding="utf-8",
    )

    assert seed._load_faqs(path) == [("Parking?", "Free parking behind the shop.")]


def test_load_config_requires_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        seed._load_config([])


def test_load_config_reads_flags_and_faq_file(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    path = tmp_path / "faqs.json"
    path.write_text(json.dumps([{"question": "Q?", "answer": "A."}]), encoding="utf-8")
    monkeypatch.setenv("DATABASE_URL", "sqlite://")

    config = seed._load_config(["--name", " Acme ", "--timezone", "Asia/Tokyo", "--faq-file", str(path)])

    assert config.name == "Acme"
    assert config.timezone == "Asia/Tokyo"
    assert config.tone_name == "friendly"
    assert config.faqs == [("Q?", "A.")]


def test_main_seeds_a_sqlite_database(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    db_url = f"sqlite+pysqlite:///{tmp_path / 'seed.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setattr(seed, "load_dotenv", lambda: None)

    tenant_id = seed.main(["--name", "Demo Pizza"])

    factory = seed.get_sessionmaker(database_url=db_url)
    with factory() as session:
        business = session.get(Business, tenant_id)
        assert business.name == "Demo Pizza"
        assert len(business.faqs) == len(DEFAULT_FAQS)
    factory.kw["bind"].dispose()
