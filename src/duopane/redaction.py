"""Secret scrubbing for screen text handed to the agent."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SecretPattern:
    name: str
    regex: re.Pattern[str]
    group: int = 0


@dataclass(frozen=True, slots=True)
class SecretMatch:
    name: str
    start: int
    end: int

    @property
    def placeholder(self) -> str:
        return placeholder_for(self.name)


@dataclass(frozen=True, slots=True)
class RedactedText:
    text: str
    secrets: tuple[SecretMatch, ...] = ()

    @property
    def has_secrets(self) -> bool:
        return bool(self.secrets)


def placeholder_for(name: str) -> str:
    return f"[REDACTED:{name}]"


BUILTIN_PATTERNS: tuple[SecretPattern, ...] = (
    SecretPattern("aws_key", re.compile(r"AKIA[0-9A-Z]{16}")),
    SecretPattern("github_token", re.compile(r"gh[ps]_[A-Za-z0-9_]{36,}")),
    SecretPattern(
        "generic_api_key",
        re.compile(
            r"(?i)(api[_-]?key|apikey|secret[_-]?key|access[_-]?token)"
            r"\s*[:=]\s*['\"]?([A-Za-z0-9_\-]{20,})['\"]?"
        ),
        group=2,
    ),
    SecretPattern("bearer_token", re.compile(r"Bearer\s+[A-Za-z0-9_\-.]{20,}")),
    SecretPattern(
        "private_key", re.compile(r"-----BEGIN (?:RSA |EC |DSA )?PRIVATE KEY-----")
    ),
    SecretPattern(
        "jwt",
        re.compile(
            r"eyJ[A-Za-z0-9_\-]{10,}\.[A-Za-z0-9_\-]{10,}\.[A-Za-z0-9_\-]{10,}"
        ),
    ),
    SecretPattern(
        "connection_string",
        re.compile(r"(?i)(?:postgres|postgresql|mysql|mongodb|redis)://\S+@\S+"),
    ),
    SecretPattern(
        "env_secret",
        re.compile(
            r"(?i)(?:DB_PASSWORD|DATABASE_URL|SECRET_KEY|PRIVATE_KEY|AUTH_TOKEN"
            r"|ENCRYPTION_KEY|AWS_SECRET_ACCESS_KEY|[A-Z0-9_]*_PASSWORD"
            r"|[A-Z0-9_]*_SECRET)\s*=\s*['\"]?[^\s'\"]{8,}['\"]?"
        ),
    ),
)


def compile_patterns(custom: Mapping[str, str]) -> list[SecretPattern]:
    return [SecretPattern(name, re.compile(pattern)) for name, pattern in custom.items()]


class Redactor:
    def __init__(self, extra: Iterable[SecretPattern] = ()) -> None:
        self.patterns: list[SecretPattern] = [*BUILTIN_PATTERNS, *extra]

    @classmethod
    def from_mapping(cls, custom: Mapping[str, str]) -> Redactor:
        return cls(compile_patterns(custom))

    def find(self, text: str) -> list[SecretMatch]:
        found: list[SecretMatch] = []
        for pattern in self.patterns:
            for match in pattern.regex.finditer(text):
                start, end = match.span(pattern.group)
                if start < 0 or start == end:
                    continue
                if any(m.start < end and start < m.end for m in found):
                    continue
                found.append(SecretMatch(pattern.name, start, end))
        found.sort(key=lambda m: m.start)
        return found

    def redact(self, text: str) -> RedactedText:
        found = self.find(text)
        if not found:
            return RedactedText(text)
        pieces: list[str] = []
        cursor = 0
        for match in found:
            pieces.append(text[cursor : match.start])
            pieces.append(match.placeholder)
            cursor = match.end
        pieces.append(text[cursor:])
        return RedactedText("".join(pieces), tuple(found))

    def redact_lines(self, lines: Iterable[str]) -> tuple[list[str], int]:
        out: list[str] = []
        count = 0
        for line in lines:
            result = self.redact(line)
            out.append(result.text)
            count += len(result.secrets)
        return out, count
