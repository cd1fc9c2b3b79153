# backend/yuandi/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite for local work; production points DATABASE_URL at Postgres
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///yuandi.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 1 CNY = 180 KRW unless the inbound request carries its own rate
    DEFAULT_CNY_KRW_RATE = float(os.environ.get("DEFAULT_CNY_KRW_RATE", "180"))

    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "5"))

    # Order numbers roll over at midnight KST
    ORDER_NUMBER_UTC_OFFSET_HOURS = int(os.environ.get("ORDER_NUMBER_UTC_OFFSET_HOURS", "9"))

    # Dev frontends allowed to call the API from the browser
    CORS_ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if o.strip()
    ]
