"""
Column relevance scoring.

Maps free-text business terms to schema column names. The planners only
talk to ``ColumnScorer`` so the keyword implementation can be swapped for
an embedding-based one without touching planner control flow.
"""
from abc import ABC, abstractmethod
from typing import Iterable, List


class ColumnScorer(ABC):
    """Narrow interface between planners and term-to-column matching"""

    @abstractmethod
    def matches(self, column: str, keywords: Iterable[str]) -> bool:
        """True if the column is relevant to any of the keywords"""
        pass

    @abstractmethod
    def mentioned_in(self, column: str, business_terms: Iterable[str]) -> bool:
        """True if the column and a business term refer to each other"""
        pass

    @abstractmethod
    def term_matches(self, business_terms: Iterable[str], keywords: Iterable[str]) -> bool:
        """True if any business term uses any of the keywords"""
        pass

    def filter(self, columns: Iterable[str], keywords: Iterable[str]) -> List[str]:
        keywords = list(keywords)
        return [column for column in columns if self.matches(column, keywords)]


class KeywordColumnScorer(ColumnScorer):
    """Case-insensitive substring matching"""

    def matches(self, column: str, keywords: Iterable[str]) -> bool:
        name = column.lower()
        return any(keyword.lower() in name for keyword in keywords)

    def term_matches(self, business_terms: Iterable[str], keywords: Iterable[str]) -> bool:
        keywords = [keyword.lower() for keyword in keywords]
        for term in business_terms:
            text = term.lower()
            for keyword in keywords:
                if keyword in _without_false_friends(text, keyword):
                    return True
        return False

    def mentioned_in(self, column: str, business_terms: Iterable[str]) -> bool:
        name = _squash(column)
        if not name:
            return False
        for term in business_terms:
            squashed = _squash(term)
            if not squashed:
                continue
            # "total deposits" mentions "Deposits"; "country" is mentioned by "CountryName"
            if name in squashed or squashed in name:
                return True
            if any(_squash(word) == name for word in term.split()):
                return True
        return False


# Words that contain a keyword without meaning it
FALSE_FRIENDS = {
    "count": ("country", "countries"),
}


def _without_false_friends(text: str, keyword: str) -> str:
    for word in FALSE_FRIENDS.get(keyword, ()):
        text = text.replace(word, " ")
    return text


def _squash(text: str) -> str:
    return text.lower().replace("_", "").replace(" ", "")


default_scorer = KeywordColumnScorer()
