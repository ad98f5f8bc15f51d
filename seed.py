"""Utility script to bootstrap the database with a demo business and its FAQs."""

from __future__ import annotations

import argparse
import json
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

import psycopg
from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from app.models import Business, BusinessFaq
from app.models.session import create_schema, get_sessionmaker

logger = logging.getLogger("seed")

DEFAULT_FAQS: tuple[tuple[str, str], ...] = (
    (
        "What are your opening hours?",
        "We are open Monday to Friday from 9am to 6pm.",
    ),
    (
        "What is your refund policy?",
        "You can request a full refund within 30 days of purchase.",
    ),
    (
        "Do you offer delivery?",
        "Yes, we deliver nationwide within 3 to 5 business days.",
    ),
)


@dataclass(slots=True)
class SeedConfig:
    """Configuration for the seed process, from flags and the environment."""

    db_url: str
    name: str = "Demo Business"
    timezone: str = "UTC"
    tone_name: str = "friendly"
    faqs: list[tuple[str, str]] = field(default_factory=lambda: list(DEFAULT_FAQS))


def _safe_url(db_url: str) -> str:
    """Return a version of ``db_url`` with any password redacted."""

    try:
        parsed = make_url(db_url)
    except Exception:  # pragma: no cover - defensive fallback
        return db_url
    if parsed.password is None:
        return db_url
    return parsed.set(password="***").render_as_string(hide_password=False)


def _load_faqs(path: Path) -> list[tuple[str, str]]:
    """Read ``[{"question": ..., "answer": ...}]`` entries from a JSON file."""

    entries = json.loads(path.read_text(encoding="utf-8"))
    faqs = []
    for item in entries:
        question = str(item.get("question") or "").strip()
        answer = str(item.get("answer") or "").strip()
        if question and answer:
            faqs.append((question, answer))
    return faqs


def _load_config(argv: Sequence[str] | None = None) -> SeedConfig:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--name", default=os.getenv("SEED_BUSINESS_NAME", "Demo Business"))
    parser.add_argument("--timezone", default=os.getenv("SEED_BUSINESS_TIMEZONE", "UTC"))
    parser.add_argument("--tone", default=os.getenv("SEED_BUSINESS_TONE", "friendly"))
    parser.add_argument("--faq-file", default=os.getenv("SEED_FAQ_FILE"))
    args = parser.parse_args(argv)

    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise RuntimeError("DATABASE_URL is not configured.")
    config = SeedConfig(
        db_url=db_url,
        name=args.name.strip(),
        timezone=args.timezone.strip(),
        tone_name=args.tone.strip(),
    )
    if args.faq_file:
        faq_path = Path(args.faq_file).expanduser()
        if faq_path.exists():
            config.faqs = _load_faqs(faq_path)
        else:
            logger.warning("FAQ file %s not found; using the default FAQs.", faq_path)
    return config


def wait_for_database(
    db_url: str, max_attempts: int = 10, delay: float = 3.0
) -> None:
    """Attempt to reach a Postgres database, retrying if necessary.

    Non-Postgres URLs (for example SQLite files) need no wait and return
    immediately.
    """

    url = make_url(db_url)
    if url.get_backend_name() not in ("postgresql", "postgres"):
        return
    dsn = url.set(drivername="postgresql").render_as_string(hide_password=False)
    safe_url = _safe_url(db_url)

    for attempt in range(1, max_attempts + 1):
        try:
            with psycopg.connect(dsn, connect_timeout=5) as connection:
                with connection.cursor() as cursor:
                    cursor.execute("SELECT 1")
        except Exception as exc:  # pragma: no cover - depends on external DB
            logger.info(
                "Database not ready (attempt %d/%d): %s; retrying in %.1fs",
                attempt,
                max_attempts,
                exc,
                delay,
            )
            if attempt >= max_attempts:
                raise RuntimeError("Database did not become ready in time") from exc
            time.sleep(delay)
            continue

        logger.info("Database connection established after %d attempt(s): %s", attempt, safe_url)
        return


def provision_business(factory: sessionmaker[Session], config: SeedConfig) -> uuid.UUID:
    """Create the business named in ``config`` or reuse an existing one."""

    with factory.begin() as session:
        business = session.execute(
            select(Business).where(Business.name == config.name)
        ).scalar_one_or_none()
        if business is None:
            business = Business(
                name=config.name,
                timezone=config.timezone,
                tone_name=config.tone_name,
            )
            session.add(business)
            session.flush()
            logger.info("Created business %s (%s)", business.id, business.name)
        else:
            logger.info("Business %s already exists; reusing.", business.name)
        return business.id


def seed_faqs(
    factory: sessionmaker[Session], tenant_id: uuid.UUID, faqs: Sequence[tuple[str, str]]
) -> int:
    """Insert FAQ entries whose question is not stored yet; return how many were added."""

    added = 0
    with factory.begin() as session:
        existing = set(
            session.scalars(
                select(BusinessFaq.question).where(BusinessFaq.tenant_id == tenant_id)
            ).all()
        )
        for question, answer in faqs:
            if question in existing:
                continue
            session.add(BusinessFaq(tenant_id=tenant_id, question=question, answer=answer))
            existing.add(question)
            added += 1
    logger.info("Added %d FAQ entr%s for tenant %s", added, "y" if added == 1 else "ies", tenant_id)
    return added


def main(argv: Sequence[str] | None = None) -> uuid.UUID:
    """Entrypoint for the seeding workflow."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    config = _load_config(argv)
    wait_for_database(config.db_url)
    logger.info("Starting seed process using %s", _safe_url(config.db_url))

    factory = get_sessionmaker(database_url=config.db_url)
    create_schema(factory)
    tenant_id = provision_business(factory, config)
    seed_faqs(factory, tenant_id, config.faqs)

    logger.info("Seed process completed. Tenant ID: %s", tenant_id)
    return tenant_id


if __name__ == "__main__":
    main()
