# piggies/services/content_check.py
# Проверка текста сообщений/анкет. Вердикт "flagged" превращается в
# автоматическое предупреждение (см. services/moderation.warn_user).

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class Verdict:
    flagged: bool
    matched: List[str] = field(default_factory=list)

    @property
    def reason(self) -> Optional[str]:
        if not self.flagged:
            return None
        return "Automated content check: " + ", ".join(self.matched)


class ContentChecker:
    def check(self, text: str) -> Verdict:
        raise NotImplementedError


class KeywordContentChecker(ContentChecker):
    """Помечает текст, если в нём есть запрещённое слово (целиком, без учёта регистра)."""

    def __init__(self, terms: Iterable[str]):
        self.terms = sorted({t.strip().lower() for t in terms if t and t.strip()})
        self._patterns = [(t, re.compile(r"\b" + re.escape(t) + r"\b", re.IGNORECASE)) for t in self.terms]

    def check(self, text: str) -> Verdict:
        if not text:
            return Verdict(False)
        matched = [t for t, rx in self._patterns if rx.search(text)]
        return Verdict(bool(matched), matched)


_checker: Optional[ContentChecker] = None


def get_content_checker() -> ContentChecker:
    global _checker
    if _checker is None:
        raw = os.getenv("PIGGIES_BLOCKED_TERMS", "")
        _checker = KeywordContentChecker(raw.split(","))
    return _checker


def set_content_checker(checker: Optional[ContentChecker]) -> None:
    global _checker
    _checker = checker
