"""
Join codes — human-entered code to vault id.

Lookups return a tagged result instead of a bare list:

    Found(vault_id) | Missing() | LookupFailed(reason)

People type codes in lower case, so an unmatched code is retried
once upper-cased.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Union

from .interfaces import RelationalStore

logger = logging.getLogger("eventvault.codes")

CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class Found:
    vault_id: str


@dataclass(frozen=True)
class Missing:
    pass


@dataclass(frozen=True)
class LookupFailed:
    reason: str


CodeLookup = Union[Found, Missing, LookupFailed]


def generate_vault_code(length: int = CODE_LENGTH) -> str:
    """Random upper-case alphanumeric join code."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip()


class CodeResolver:
    """Resolves join codes against the relational store."""

    def __init__(self, store: RelationalStore) -> None:
        self._store = store

    async def resolve(self, code: str) -> CodeLookup:
        code = normalize_code(code)
        if not code:
            return Missing()

        candidates = [code]
        if code.upper() != code:
            candidates.append(code.upper())

        for candidate in candidates:
            try:
                vaults = await self._store.find_vaults_by_code(candidate)
            except Exception as exc:
                logger.warning("Code lookup failed for %r: %s", candidate, exc)
                return LookupFailed(str(exc) or type(exc).__name__)
            if vaults:
                return Found(vaults[0].id)

        return Missing()
