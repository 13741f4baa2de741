# backend/agency/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/agency.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///agency.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Document numbering: the first issued number is START + 1 (INV-1001, TKT-1001)
    INVOICE_NUMBER_START = int(os.environ.get("INVOICE_NUMBER_START", "1000"))
    TICKET_NUMBER_START = int(os.environ.get("TICKET_NUMBER_START", "1000"))

    # Display currency for descriptions and reports
    CURRENCY = os.environ.get("CURRENCY", "AED")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
