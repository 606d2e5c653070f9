# mtg_rulings/rules_parser.py - Comprehensive Rules text scanner
"""
Turns the plain-text Comprehensive Rules into rule records.

The scan is a sequence of regular expressions over the document. Line
breaks are not required, so a rulebook whose text runs together parses the
same as the published layout:

    1. Game Concepts            <- chapter header (1-2 digit number)
    100. General                <- section header (3 digit number)
    100.1. These Magic rules... <- numbered rule
    100.1a A two-player game... <- lettered subrule

Chapter and section titles are looked up by number. When a rule's chapter or
section was not captured (the document deviates from the layout above), the
previous rule's titles are reused, so such rules can end up tagged with the
wrong chapter or section. This is a known limitation of the scanner.
"""
import logging
import re
from typing import Any, Dict, List, Tuple

from mtg_rulings.config import RULES_CONFIG

logger = logging.getLogger("RulesParser")

DEFAULT_CHAPTER = "Game Concepts"

# Rule numbers cited from inside another rule ("see rule 702.19") do not start a rule
NOT_CITED = r'(?<!\w)(?<!rule )(?<!Rule )(?<!rules )(?<!and )(?<!or )'
RULE_START = NOT_CITED + r'\d{3}\.\d+[a-z]?\.?\s'

# "1. Game Concepts" / "100. General" followed by a rule or section number
HEADER_AHEAD = r'(?<![\w.])\d{1,3}\.[ \t]+[A-Z][^\d\n]*?\s*\d{3}\.'

# "1. Game Concepts" followed by "100."
CHAPTER_PATTERN = re.compile(r'(?<![\w.])(\d{1,2})\.[ \t]+([A-Z][^\d\n]*?)\s*(?=\d{3}\.)')

# "100. General" followed by "100.1"
SECTION_PATTERN = re.compile(r'(?<![\w.])(\d{3})\.[ \t]+([A-Z][^\d\n]*?)\s*(?=\d{3}\.\d)')

# "100.1. body" / "100.1a body"; the body runs to the next rule, the next
# chapter or section header, or the end of the text. Line breaks are optional.
RULE_PATTERN = re.compile(
    NOT_CITED + r'(\d{3}\.\d+[a-z]?)\.?\s+(.*?)'
    r'(?=' + RULE_START + '|' + HEADER_AHEAD + r'|\Z)',
    re.S
)

# Everything after the numbered rules
TRAILER_PATTERN = re.compile(r'^[ \t]*(?:Glossary|Credits)[ \t]*$', re.M)

RULE_NUMBER_PATTERN = re.compile(r'^\d{3}\.\d+[a-z]?$')

EXAMPLE_PATTERN = re.compile(r'Example:\s*([^.]*\.)')

KEYWORD_PATTERN = re.compile(r'\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b')


def normalize_line_endings(text: str) -> str:
    return text.replace('\r\n', '\n').replace('\r', '\n')


def collapse_whitespace(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip()


def extract_headings(text: str) -> Tuple[Dict[int, str], Dict[int, str]]:
    """Build chapter number -> title and section number -> title maps. The first title seen for a number wins."""
    chapters = {}
    for match in CHAPTER_PATTERN.finditer(text):
        chapters.setdefault(int(match.group(1)), match.group(2).strip())

    sections = {}
    for match in SECTION_PATTERN.finditer(text):
        sections.setdefault(int(match.group(1)), match.group(2).strip())

    return chapters, sections


def strip_trailer(text: str) -> str:
    """Cut the glossary and credits that follow the numbered rules"""
    first_rule = re.search(RULE_START, text)
    if first_rule is None:
        return text

    trailer = TRAILER_PATTERN.search(text, first_rule.end())
    return text[:trailer.start()] if trailer else text


def extract_examples(text: str) -> List[str]:
    return [example.strip() for example in EXAMPLE_PATTERN.findall(text)]


def remove_examples(text: str) -> str:
    return collapse_whitespace(EXAMPLE_PATTERN.sub('', text))


def extract_keywords(text: str, limit: int = RULES_CONFIG["MAX_KEYWORDS"]) -> List[str]:
    """Capitalized words and phrases, de-duplicated in first-seen order"""
    keywords = []
    for match in KEYWORD_PATTERN.finditer(text):
        keyword = collapse_whitespace(match.group(0))
        if keyword not in keywords:
            keywords.append(keyword)
        if len(keywords) >= limit:
            break
    return keywords


def create_rule_entry(rule_number: str, text: str, chapter: str, section: str) -> Dict[str, Any]:
    """Create a rule record ready for insertion"""
    body = collapse_whitespace(text)
    subsection = rule_number.split('.', 1)[1] if '.' in rule_number else ''

    return {
        "rule_number": rule_number,
        "text": remove_examples(body),
        "examples": extract_examples(body),
        "keywords": extract_keywords(body),
        "chapter": chapter,
        "section": section,
        "subsection": subsection,
        # Reserved for a cross-reference pass; nothing populates it yet
        "related_rules": []
    }


def parse_comprehensive_rules(rules_text: str,
                              start_anchor: str = RULES_CONFIG["START_ANCHOR"],
                              min_length: int = RULES_CONFIG["MIN_RULE_LENGTH"]) -> List[Dict[str, Any]]:
    """Parse the comprehensive rules text into rule records, in document order"""
    rules = []
    text = normalize_line_endings(rules_text or '')

    start_index = text.find(start_anchor)
    if start_index == -1:
        logger.warning(f'Could not find "{start_anchor}" in the rules text')
        return rules

    text = strip_trailer(text[start_index:])
    chapters, sections = extract_headings(text)
    logger.debug(f"Found {len(chapters)} chapters and {len(sections)} sections")

    current_chapter = DEFAULT_CHAPTER
    current_section = ''

    for match in RULE_PATTERN.finditer(text):
        rule_number = match.group(1)
        body = match.group(2).strip()

        # Very short matches are stray numbers, not rules
        if len(body) <= min_length:
            continue

        rule_prefix = int(rule_number.split('.')[0])
        chapter_number = rule_prefix // 100

        current_chapter = chapters.get(chapter_number, current_chapter)
        current_section = sections.get(rule_prefix, current_section)

        rules.append(create_rule_entry(rule_number, body, current_chapter, current_section))

    logger.info(f"Parsed {len(rules)} rules")
    return rules
