"""Checks that game identifiers follow the naming rules for game ids."""

from __future__ import annotations

import enum
import itertools
import json
import re
import sys
from dataclasses import dataclass, field
from typing import Iterable, Optional

_ROMAN_PATTERN = re.compile(r"M{0,3}(CM|CD|D?C{0,3})(XC|XL|L?X{0,3})(IX|IV|V?I{0,3})")
_ROMAN_VALUES = {"I": 1, "V": 5, "X": 10, "L": 50, "C": 100, "D": 500, "M": 1000}
_INCLUSIVE_SPLIT = re.compile(r"[^ \-]*[ \-]|[^ \-]+")
_U16_PATTERN = re.compile(r"\+?[0-9]+")

_ONES = (
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
    "seventeen", "eighteen", "nineteen",
)
_TENS = (
    "", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety",
)
_SCALES = ("", "thousand", "million", "billion", "trillion", "quadrillion")


class IDRule(enum.Enum):
    """A naming rule that shaped (or broke) an expected id."""

    IDsMustBeLowerCase = enum.auto()
    NumbersAreTheirOwnWord = enum.auto()
    IfFirstWordNumberNoDigits = enum.auto()
    IfLastWordNumberMustBeAppended = enum.auto()
    ConvertRomanNumeralsToArabic = enum.auto()
    TwoWordsOrLessUseFullWords = enum.auto()
    MoreThanTwoWordsMakeAcronym = enum.auto()
    IfIDDuplicateSameGameAppendYearToNewer = enum.auto()
    IfIDDuplicateSameGameAppendProtocol = enum.auto()
    IfIDDuplicateNoAcronym = enum.auto()
    IfModForQueriesProcessOnlyModName = enum.auto()
    NoDuplicates = enum.auto()


@dataclass
class IDFail:
    """An id that does not match the id its game name calls for."""

    game_id: str
    game_name: str
    expected_id: str
    rule_stack: list[IDRule] = field(default_factory=list)


@dataclass
class GameNameParsed:
    """A game name broken into the parts the rules work on."""

    name: str
    words: list[str]
    optional_parts: list[str]
    year: Optional[int]


def _is_ascii_digit(char: str) -> bool:
    return "0" <= char <= "9"


def _all_ascii_digits(text: str) -> bool:
    return all(_is_ascii_digit(c) for c in text)


def _parse_u16(text: str) -> Optional[int]:
    if not _U16_PATTERN.fullmatch(text):
        return None
    value = int(text)
    return value if value <= 0xFFFF else None


def split_on_switch_between_alpha_numeric(text: str) -> list[str]:
    """Split ``text`` wherever characters switch between digits and non-digits."""
    return ["".join(group) for _, group in itertools.groupby(text, key=_is_ascii_digit)]


def extract_bracketed_suffix(text: str) -> tuple[str, Optional[str]]:
    """Separate a trailing ``(...)`` part from ``text``."""
    if text.endswith(")"):
        inner = text[:-1]
        index = inner.rfind("(")
        if index >= 0:
            return inner[:index], inner[index + 1 :]
    return text, None


def roman_to_int(text: str) -> int:
    """Convert an upper-case Roman numeral to its value; raise ValueError if invalid."""
    if not text or not _ROMAN_PATTERN.fullmatch(text):
        raise ValueError(f"not a roman numeral: {text!r}")
    total = 0
    values = [_ROMAN_VALUES[c] for c in text]
    for current, following in itertools.zip_longest(values, values[1:], fillvalue=0):
        total += -current if current < following else current
    return total


def _below_thousand(number: int) -> list[str]:
    words: list[str] = []
    hundreds, rest = divmod(number, 100)
    if hundreds:
        words += [_ONES[hundreds], "hundred"]
    if rest >= 20:
        tens, ones = divmod(rest, 10)
        words.append(_TENS[tens] + (f"-{_ONES[ones]}" if ones else ""))
    elif rest:
        words.append(_ONES[rest])
    return words


def number_to_words(number: float) -> str:
    """Spell out a number in lower-case English words."""
    if number < 0:
        return "minus " + number_to_words(-number)
    whole = int(number)
    fraction = f"{number:.10f}".split(".")[1].rstrip("0") if number != whole else ""
    if whole == 0:
        words = ["zero"]
    else:
        words = []
        remaining = whole
        for scale in _SCALES:
            remaining, chunk = divmod(remaining, 1000)
            if chunk:
                words = _below_thousand(chunk) + ([scale] if scale else []) + words
            if not remaining:
                break
        if remaining:
            raise ValueError(f"number too large to spell out: {number}")
    if fraction:
        words += ["point"] + [_ONES[int(d)] for d in fraction]
    return " ".join(words)


def _combine_dashed_numbers(words: Iterable[str]) -> list[str]:
    """Join numbers split by dashes (``44-`` ``45`` becomes ``4445``)."""
    result: list[str] = []
    accumulator: Optional[str] = None
    for word in words:
        if accumulator is not None:
            if word.endswith("-"):
                maybe_number = word[:-1]
                if not _all_ascii_digits(maybe_number):
                    raise ValueError("Text after number-")
                accumulator += maybe_number
            elif _all_ascii_digits(word):
                result.append(accumulator + word)
                accumulator = None
            else:
                raise ValueError("Text after number-")
            continue
        if word.endswith("-") and _all_ascii_digits(word[:-1]):
            accumulator = word[:-1]
            continue
        result.append(word)
    return result


def extract_game_parts_from_name(game: str) -> GameNameParsed:
    """Break a game name into words, optional parts and a release year."""
    optional_parts: list[str] = []
    name, paren = extract_bracketed_suffix(game)
    if paren is not None:
        optional_parts.append(paren)

    words: list[str] = []
    for piece in _INCLUSIVE_SPLIT.findall(name):
        piece = piece.strip()
        if piece.startswith("(") and piece.endswith(")"):
            optional_parts.append(piece)
            continue
        cleaned = "".join(c for c in piece if _is_ascii_digit(c) or c.isalpha() or c == "-")
        if cleaned.strip("-"):
            words.append(cleaned)
    words = _combine_dashed_numbers(words)

    year: Optional[int] = None
    for part in optional_parts:
        if part.startswith("(") and part.endswith(")") and len(part) >= 2:
            year = _parse_u16(part[1:-1])
        else:
            year = _parse_u16(part)
        if year is not None:
            break

    return GameNameParsed(name=name, words=words, optional_parts=optional_parts, year=year)


def check_game_name_rule(
    seen_ids: dict[str, list[str]],
    game_id: str,
    game: GameNameParsed,
    is_mod_name: bool = False,
) -> list[IDFail]:
    """Check one game against the rules, recording its id in ``seen_ids``."""
    wrong_ids: list[IDFail] = []
    rule_stack: list[IDRule] = []
    if is_mod_name:
        rule_stack.append(IDRule.IfModForQueriesProcessOnlyModName)
    suffix = ""

    if game_id.lower() != game_id:
        wrong_ids.append(
            IDFail(game_id, game.name, game_id.lower(), [IDRule.IDsMustBeLowerCase])
        )

    words: list[str] = []
    for position, word in enumerate(game.words):
        if position > 0:
            try:
                number = roman_to_int(word)
            except ValueError:
                pass
            else:
                rule_stack.append(IDRule.ConvertRomanNumeralsToArabic)
                word = str(number)
        words.append(word)

    split_words: list[str] = []
    for word in words:
        parts = split_on_switch_between_alpha_numeric(word)
        if len(parts) > 1:
            rule_stack.append(IDRule.NumbersAreTheirOwnWord)
        split_words.extend(parts)
    words = split_words

    if words and _is_ascii_digit(words[0][0]):
        words[0] = number_to_words(float(words[0]))
        rule_stack.append(IDRule.IfFirstWordNumberNoDigits)

    if words and _all_ascii_digits(words[-1]):
        suffix += words.pop()
        rule_stack.append(IDRule.IfLastWordNumberMustBeAppended)

    if len(words) <= 2:
        rule_stack.append(IDRule.TwoWordsOrLessUseFullWords)
        main_part = "".join(w.strip("-") for w in words)
    else:
        rule_stack.append(IDRule.MoreThanTwoWordsMakeAcronym)
        main_part = "".join(w[0] for w in words if w[0].isalnum())

    expected_id = f"{main_part}{suffix}".lower()

    other_words = seen_ids.get(expected_id)
    if other_words is not None:
        same_game = len(other_words) == len(words) and all(
            ours.lower() == theirs.lower() for ours, theirs in zip(words, other_words)
        )
        if same_game:
            if game.year is not None:
                rule_stack.append(IDRule.IfIDDuplicateSameGameAppendYearToNewer)
                expected_id = f"{expected_id}{game.year}".lower()
            elif game.optional_parts:
                rule_stack.append(IDRule.IfIDDuplicateSameGameAppendProtocol)
                protocol = extract_game_parts_from_name(game.optional_parts[0])
                expected_id = expected_id + "".join(protocol.words)

    if expected_id in seen_ids:
        rule_stack.append(IDRule.IfIDDuplicateNoAcronym)
        main_part = "".join(w.strip("-") for w in words)
        expected_id = f"{main_part}{suffix}".lower()

    if not is_mod_name and game_id != expected_id and "-" in game.name:
        mod_name = game.name.split("-", 1)[1]
        result = check_game_name_rule(
            seen_ids, game_id, extract_game_parts_from_name(mod_name), True
        )
        if not result:
            return result
        wrong_ids.extend(result)

    duplicate = expected_id in seen_ids
    seen_ids[expected_id] = words
    if duplicate:
        rule_stack.append(IDRule.NoDuplicates)

    if game_id != expected_id or duplicate:
        wrong_ids.append(IDFail(game_id, game.name, expected_id, rule_stack))

    return wrong_ids


def check_game_name_rules(games: Iterable[tuple[str, str]]) -> list[IDFail]:
    """Check ``(id, name)`` pairs against the rules and return every failure."""
    parsed = [(game_id, extract_game_parts_from_name(name)) for game_id, name in games]
    parsed.sort(
        key=lambda item: (
            item[1].year is not None,
            item[1].year or 0,
            len(item[1].name.encode("utf-8")),
        )
    )

    seen_ids: dict[str, list[str]] = {}
    wrong_ids: list[IDFail] = []
    for game_id, game in parsed:
        wrong_ids.extend(check_game_name_rule(seen_ids, game_id, game, False))

    if wrong_ids:
        for fail in wrong_ids:
            print(fail)
        percentage = len(wrong_ids) * 100 // len(parsed)
        print(f"{len(wrong_ids)} ({percentage}%) IDs didn't match naming rules")

    return wrong_ids


def check_single_game_rule(game_id: str, name: str) -> list[IDFail]:
    """Check a single game id and name against the rules."""
    return check_game_name_rules([(game_id, name)])


def main(argv: Optional[list[str]] = None) -> int:
    """Check a JSON map of id to ``{"name": ...}`` from a file or standard input."""
    args = sys.argv[1:] if argv is None else argv
    if args:
        with open(args[0], encoding="utf-8") as handle:
            games = json.load(handle)
    else:
        games = json.load(sys.stdin)
    failed = check_game_name_rules((key, game["name"]) for key, game in games.items())
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())