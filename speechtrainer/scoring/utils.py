from typing import List

from Levenshtein import distance as levenshtein_distance


def similarity(first: str, second: str) -> float:
    """1 - edit distance / longer length; two empty strings are identical."""
    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(first, second)) / longest


def split_words(text: str) -> List[str]:
    return text.split()


def language_code(language: str) -> str:
    return language.split("-")[0].lower()
