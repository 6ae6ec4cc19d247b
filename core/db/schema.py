"""
Schema and migration helpers for Postgres.
"""
from __future__ import annotations

import logging
import os

from core.db.base import get_conn
from core.db.users import create_user, get_user_by_email, hash_password

log = logging.getLogger("db")

# Truncation order for test cleanup (children first).
TABLES = [
    "notifications",
    "offers",
    "water_requests",
    "sessions",
    "users",
]


def init_db() -> None:
    """Create the users, sessions, water_requests, offers and notifications tables if missing."""
    conn = get_conn()
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users(
            id SERIAL PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            name TEXT,
            phone TEXT,
            role TEXT NOT NULL DEFAULT 'consumer'
                CHECK (role IN ('consumer', 'supplier', 'admin')),
            active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS sessions(
            id TEXT PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL,
            last_seen_at TIMESTAMPTZ NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS water_requests(
            id SERIAL PRIMARY KEY,
            consumer_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            guest_name TEXT,
            guest_phone TEXT,
            guest_email TEXT,
            address TEXT NOT NULL,
            special_instructions TEXT,
            amount INTEGER NOT NULL,
            is_urgent BOOLEAN NOT NULL DEFAULT FALSE,
            latitude DOUBLE PRECISION,
            longitude DOUBLE PRECISION,
            tracking_token TEXT NOT NULL UNIQUE,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            accepted_at TIMESTAMPTZ,
            timed_out_at TIMESTAMPTZ
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS offers(
            id SERIAL PRIMARY KEY,
            request_id INTEGER NOT NULL REFERENCES water_requests(id) ON DELETE CASCADE,
            provider_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            price INTEGER NOT NULL,
            delivery_window TEXT,
            message TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            expires_at TIMESTAMPTZ NOT NULL,
            accepted_at TIMESTAMPTZ
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS offers_status_expires_idx ON offers (status, expires_at)"
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS notifications(
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            data JSONB,
            read BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )

    conn.commit()
    conn.close()

    ensure_admin_from_env()


def ensure_admin_from_env() -> None:
    """
    Optionally seed/update an admin account from environment variables.
    Set ADMIN_EMAIL and ADMIN_PASSWORD before startup to use.
    """
    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")

    if not admin_email or not admin_password:
        return

    existing = get_user_by_email(admin_email)
    if existing:
        conn = get_conn()
        cur = conn.cursor()
        cur.execute(
            "UPDATE users SET role='admin', password_hash=? WHERE email=?",
            (hash_password(admin_password), admin_email.strip().lower()),
        )
        conn.commit()
        conn.close()
        return

    create_user(admin_email, admin_password, role="admin", name="Admin")
    log.info("Seeded admin account", extra={"email": admin_email})


def truncate_all() -> None:
    conn = get_conn()
    cur = conn.cursor()
    cur.execute("TRUNCATE " + ", ".join(TABLES) + " RESTART IDENTITY CASCADE")
    conn.commit()
    conn.close()


__all__ = [
    "TABLES",
    "init_db",
    "ensure_admin_from_env",
    "truncate_all",
]
