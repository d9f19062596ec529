from __future__ import annotations

import os
from functools import lru_cache
from typing import Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _parse_tokens(raw: str) -> Dict[str, str]:
    # "token=user_id,token2=user_id2"
    tokens: Dict[str, str] = {}
    for pair in raw.split(","):
        token, sep, user_id = pair.strip().partition("=")
        if sep and token and user_id:
            tokens[token.strip()] = user_id.strip()
    return tokens


class Settings(BaseModel):
    app_name: str = Field(default_factory=lambda: os.getenv("APP_NAME", "snipet"))
    app_version: str = Field(default_factory=lambda: os.getenv("APP_VERSION", "0.1.0"))

    store_backend: str = Field(default_factory=lambda: os.getenv("STORE_BACKEND", "memory"))
    database_url: str = Field(
        default_factory=lambda: os.getenv(
            "DATABASE_URL",
            "sqlite+aiosqlite:///./snipet.db",
        )
    )

    allowed_origins: List[str] = Field(
        default_factory=lambda: os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    )
    host: str = Field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    comment_edit_window_seconds: int = Field(
        default_factory=lambda: int(os.getenv("COMMENT_EDIT_WINDOW_SECONDS", "1800"))
    )
    max_reply_indent: int = Field(default_factory=lambda: int(os.getenv("MAX_REPLY_INDENT", "8")))
    feed_page_size: int = Field(default_factory=lambda: int(os.getenv("FEED_PAGE_SIZE", "5")))
    fork_title_prefix: str = Field(default_factory=lambda: os.getenv("FORK_TITLE_PREFIX", "Fork of "))

    auth_tokens: Dict[str, str] = Field(default_factory=lambda: _parse_tokens(os.getenv("AUTH_TOKENS", "")))


@lru_cache
def get_settings() -> Settings:
    return Settings()
