# backend/docledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/docledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///docledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Minor units tolerated between totalValue and averageCost * quantityOnHand
    STOCK_VALUE_TOLERANCE = int(os.environ.get("STOCK_VALUE_TOLERANCE", "1"))

    # Optimistic retries when two writers race on a sequence counter
    DOCUMENT_SEQUENCE_RETRIES = int(os.environ.get("DOCUMENT_SEQUENCE_RETRIES", "3"))

    DEFAULT_LOCATION = os.environ.get("DEFAULT_LOCATION", "default")
