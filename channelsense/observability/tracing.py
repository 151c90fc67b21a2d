"""Helpers for binding run and channel identifiers to log lines."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from channelsense.config.logging_config import bind_context, unbind_context

RUN_ID_KEY = "run_id"
CHANNEL_ID_KEY = "channel_id"


@contextmanager
def run_scope(run_id: str) -> Iterator[str]:
    """Bind the weekly run identifier for the lifetime of the context."""

    bind_context(**{RUN_ID_KEY: run_id})
    try:
        yield run_id
    finally:
        unbind_context(RUN_ID_KEY)


@contextmanager
def channel_scope(channel_id: str) -> Iterator[str]:
    """Bind the channel being processed for the lifetime of the context."""

    bind_context(**{CHANNEL_ID_KEY: channel_id})
    try:
        yield channel_id
    finally:
        unbind_context(CHANNEL_ID_KEY)


__all__ = ["CHANNEL_ID_KEY", "RUN_ID_KEY", "channel_scope", "run_scope"]
