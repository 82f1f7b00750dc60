"""Utility CLI to bootstrap a demo tire shop and its admin user."""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from app.models import Business, User
from app.models.session import apply_migrations, create_schema, get_sessionmaker
from app.security import hash_password

logger = logging.getLogger("tools.bootstrap_demo")

DEFAULT_BUSINESS_NAME = "T.G.'s Tires"
DEFAULT_BUSINESS_SLUG = "tgs-tires"
DEFAULT_USER_NAME = "Demo Owner"
DEFAULT_USER_EMAIL = "owner@tgs-tires.example"
DEFAULT_USER_PASSWORD = "password"
DEFAULT_USER_ROLE = "admin"


def _as_sqlalchemy_url(db_url: str) -> str:
    """Return a SQLAlchemy URL that uses the ``psycopg`` driver."""

    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return db_url


def _safe_url(db_url: str) -> str:
    """Return ``db_url`` with any password redacted for logging."""

    parsed = make_url(db_url)
    if parsed.password is None:
        return db_url
    return parsed.set(password="***").render_as_string(hide_password=False)


def ensure_demo_entities(
    session: Session,
    *,
    business_name: str = DEFAULT_BUSINESS_NAME,
    business_slug: str = DEFAULT_BUSINESS_SLUG,
    user_name: str = DEFAULT_USER_NAME,
    user_email: str = DEFAULT_USER_EMAIL,
    user_password: str = DEFAULT_USER_PASSWORD,
    user_role: str = DEFAULT_USER_ROLE,
) -> tuple[Business, User, bool, bool]:
    """Ensure the demo business and its user exist in ``session``.

    Returns:
        The business, the user, and whether each of them was created.
    """

    slug = business_slug.strip().lower()
    email = user_email.strip().lower()
    created_business = False
    created_user = False

    business = session.execute(
        select(Business).where(Business.slug == slug)
    ).scalar_one_or_none()
    if business is None:
        business = Business(name=business_name.strip(), slug=slug, contact_email=email)
        session.add(business)
        session.flush()
        created_business = True
        logger.info("Created business %s (id=%s)", business.slug, business.id)
    else:
        logger.info("Business %s already exists (id=%s)", business.slug, business.id)

    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        user = User(
            business_id=business.id,
            email=email,
            name=user_name.strip(),
            password_hash=hash_password(user_password),
            role=user_role,
        )
        session.add(user)
        session.flush()
        created_user = True
        logger.info("Created user %s (id=%s)", user.email, user.id)
    else:
        logger.info("User %s already exists (id=%s)", user.email, user.id)

    return business, user, created_business, created_user


def main() -> None:
    """Script entrypoint for ensuring the demo business and user exist."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise RuntimeError("DATABASE_URL environment variable is required")

    sqlalchemy_url = _as_sqlalchemy_url(db_url)
    logger.info("Ensuring schema on %s", _safe_url(sqlalchemy_url))
    if sqlalchemy_url.startswith("postgresql"):
        apply_migrations(sqlalchemy_url)
    else:
        create_schema(sqlalchemy_url)

    SessionLocal = get_sessionmaker(database_url=sqlalchemy_url)
    with SessionLocal() as session:
        business, user, created_business, created_user = ensure_demo_entities(session)
        session.commit()

    logger.info(
        "Business %s (%s)", "created" if created_business else "existing", business.slug
    )
    logger.info("User %s (%s)", "created" if created_user else "existing", user.email)


if __name__ == "__main__":  # pragma: no cover - CLI execution
    main()
