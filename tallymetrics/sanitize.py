"""Character-level sanitisation of metric names, tag keys and tag values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

SanitizeFn = Callable[[str], str]

DEFAULT_REPLACEMENT_CHARACTER = "_"

ALPHANUMERIC_RANGE: tuple[tuple[str, str], ...] = (
    ("a", "z"),
    ("A", "Z"),
    ("0", "9"),
)

UNDERSCORE_CHARACTERS: tuple[str, ...] = ("_",)
UNDERSCORE_DASH_CHARACTERS: tuple[str, ...] = ("-", "_")
UNDERSCORE_DASH_DOT_CHARACTERS: tuple[str, ...] = (".", "-", "_")


def no_op_sanitize_fn(value: str) -> str:
    """Return the input as a string, with every character kept."""
    return str(value)


@dataclass(frozen=True)
class ValidCharacters:
    """A set of valid characters: inclusive ranges plus individual characters."""

    ranges: tuple[tuple[str, str], ...] = ()
    characters: tuple[str, ...] = ()

    def is_valid(self, ch: str) -> bool:
        """Whether a single character falls in a range or the character list."""
        return any(low <= ch <= high for low, high in self.ranges) or ch in self.characters

    def sanitize_fn(self, replacement: str) -> SanitizeFn:
        """Build a function replacing every invalid character with ``replacement``."""

        def sanitize(value: str) -> str:
            if all(self.is_valid(ch) for ch in value):
                return value
            return "".join(ch if self.is_valid(ch) else replacement for ch in value)

        return sanitize


@dataclass(frozen=True)
class SanitizeOptions:
    """Valid characters for names, keys and values, and the replacement character."""

    name_characters: ValidCharacters = field(default_factory=ValidCharacters)
    key_characters: ValidCharacters = field(default_factory=ValidCharacters)
    value_characters: ValidCharacters = field(default_factory=ValidCharacters)
    replacement_character: str = DEFAULT_REPLACEMENT_CHARACTER


class Sanitizer:
    """Sanitizes metric names, tag keys and tag values."""

    def __init__(
        self,
        name_fn: SanitizeFn = no_op_sanitize_fn,
        key_fn: SanitizeFn = no_op_sanitize_fn,
        value_fn: SanitizeFn = no_op_sanitize_fn,
    ) -> None:
        self._name_fn = name_fn
        self._key_fn = key_fn
        self._value_fn = value_fn

    @classmethod
    def from_options(cls, options: SanitizeOptions) -> Sanitizer:
        """Build a sanitizer from the given options."""
        rep = options.replacement_character
        return cls(
            options.name_characters.sanitize_fn(rep),
            options.key_characters.sanitize_fn(rep),
            options.value_characters.sanitize_fn(rep),
        )

    @classmethod
    def no_op(cls) -> Sanitizer:
        """A sanitizer that returns every input untouched."""
        return cls()

    def name(self, value: str) -> str:
        return self._name_fn(value)

    def key(self, value: str) -> str:
        return self._key_fn(value)

    def value(self, value: str) -> str:
        return self._value_fn(value)


_PROMETHEUS_CHARACTERS = ValidCharacters(
    ranges=ALPHANUMERIC_RANGE, characters=UNDERSCORE_CHARACTERS
)

PROMETHEUS_SANITIZE_OPTIONS = SanitizeOptions(
    name_characters=_PROMETHEUS_CHARACTERS,
    key_characters=_PROMETHEUS_CHARACTERS,
    value_characters=_PROMETHEUS_CHARACTERS,
    replacement_character=DEFAULT_REPLACEMENT_CHARACTER,
)