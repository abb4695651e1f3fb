# backend/pos_engine/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # bcrypt cost factor for supervisor PINs and passwords
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # How void/refund undoes ledger effects:
    # "delta"  - subtract the original sale's effects from current balances
    # "strict" - refuse when later movements touched the same products/customer
    REVERSAL_POLICY = os.environ.get("REVERSAL_POLICY", "delta")

    # Invoice numbers look like INV-20260108-0001
    INVOICE_PREFIX = os.environ.get("INVOICE_PREFIX", "INV")

    # Operator identity is established upstream; the gateway forwards the user id here
    OPERATOR_HEADER = os.environ.get("OPERATOR_HEADER", "X-Operator-Id")
