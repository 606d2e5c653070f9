# mtg_rulings/rules_service.py - Rule lookup and keyword search
import re
import logging
from typing import Any, Dict, List, Optional

from mtg_rulings.config import LLM_CONFIG

logger = logging.getLogger("RulesService")

# "702", "702.19" or "702.19b"
RULE_REFERENCE_PATTERN = re.compile(r'\b(\d{3}(?:\.\d+[a-z]?)?)\b')

STOPWORDS = {
    "the", "and", "for", "with", "that", "this", "what", "when", "does", "how",
    "can", "are", "was", "has", "have", "from", "into", "will", "would", "card",
    "cards", "happens", "there", "their", "they", "its", "you", "your", "about",
    "rule", "rules", "which", "while", "then", "than", "also", "any", "all"
}


def extract_search_terms(text: str) -> List[str]:
    terms = []
    for word in re.findall(r"[a-zA-Z][a-zA-Z'-]+", text.lower()):
        if len(word) >= 3 and word not in STOPWORDS and word not in terms:
            terms.append(word)
    return terms


def score_rule(rule: Dict[str, Any], terms: List[str]) -> int:
    """Number of term hits in the rule text plus double weight for keyword hits"""
    text = (rule.get("text") or "").lower()
    keywords = " ".join(rule.get("keywords") or []).lower()
    return sum(text.count(term) + 2 * keywords.count(term) for term in terms)


class RulesService:
    def __init__(self, db):
        self.db = db

    def get_rule_by_number(self, rule_number: str) -> Optional[Dict[str, Any]]:
        return self.db.get_rule_by_number(rule_number.strip().rstrip('.'))

    def search_rules(self, query: str = "", limit: int = 50) -> List[Dict[str, Any]]:
        """Rule-number queries return that rule and its subrules, other queries are ranked keyword matches"""
        query = (query or "").strip()
        if not query:
            return self.db.get_rules_by_prefix("", limit=limit)

        reference = query.rstrip('.')
        if RULE_REFERENCE_PATTERN.fullmatch(reference):
            if '.' in reference:
                return self.db.get_rule_with_subrules(reference, limit=limit)
            # A bare section number lists the whole section
            return self.db.get_rules_by_prefix(reference + '.', limit=limit)

        terms = extract_search_terms(query) or [query.lower()]
        return self._keyword_search(terms, limit)

    def find_relevant_rules(self, question: str, limit: int = LLM_CONFIG["RULES_CONTEXT_LIMIT"]) -> List[Dict[str, Any]]:
        """Rules to quote as context for a rulings question"""
        found = []
        seen = set()

        for reference in RULE_REFERENCE_PATTERN.findall(question):
            rule = self.db.get_rule_by_number(reference)
            if rule and rule["rule_number"] not in seen:
                seen.add(rule["rule_number"])
                found.append(rule)

        terms = extract_search_terms(question)
        if terms and len(found) < limit:
            for rule in self._keyword_search(terms, limit):
                if rule["rule_number"] not in seen:
                    seen.add(rule["rule_number"])
                    found.append(rule)

        return found[:limit]

    def _keyword_search(self, terms: List[str], limit: int) -> List[Dict[str, Any]]:
        candidates = {}
        for term in terms:
            for rule in self.db.search_rules_text(term, limit=limit):
                candidates.setdefault(rule["rule_number"], rule)

        ranked = sorted(candidates.values(), key=lambda rule: score_rule(rule, terms), reverse=True)
        logger.debug(f"Keyword search for {terms} matched {len(ranked)} rules")
        return ranked[:limit]
