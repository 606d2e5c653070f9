# mtg_rulings/ruling_assistant.py - LLM rulings with per-session conversation history
import os
import uuid
import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from openai import OpenAI

from mtg_rulings.config import LLM_CONFIG

logger = logging.getLogger("RulingAssistant")

ALLOWED_ROLES = ("user", "assistant")

SYSTEM_PROMPT = """You are an expert Magic: The Gathering judge.
Answer rules questions accurately and concisely, citing Comprehensive Rules numbers where they apply.
If the rules quoted below do not settle the question, say what is uncertain instead of guessing."""


class ConversationSession:
    """The recent messages of one rulings conversation"""

    def __init__(self, session_id: str, max_messages: int = LLM_CONFIG["HISTORY_LIMIT"]):
        self.session_id = session_id
        self.max_messages = max_messages
        self.messages = []

    def add_message(self, role: str, content: str):
        if role not in ALLOWED_ROLES:
            raise ValueError(f"Unsupported message role: {role}")

        self.messages.append({"role": role, "content": content})
        if len(self.messages) > self.max_messages:
            self.messages = self.messages[-self.max_messages:]

    def to_list(self) -> List[Dict[str, str]]:
        return [dict(message) for message in self.messages]

    def clear(self):
        self.messages = []

    def __len__(self):
        return len(self.messages)


class ConversationStore:
    """Thread-safe registry of conversation sessions, evicting the least recently used"""

    def __init__(self, max_sessions: int = LLM_CONFIG["MAX_SESSIONS"],
                 max_messages: int = LLM_CONFIG["HISTORY_LIMIT"]):
        self.max_sessions = max_sessions
        self.max_messages = max_messages
        self._sessions = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def new_session_id() -> str:
        return str(uuid.uuid4())

    def get(self, session_id: str) -> Optional[ConversationSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def get_or_create(self, session_id: Optional[str] = None) -> ConversationSession:
        session_id = session_id or self.new_session_id()

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = ConversationSession(session_id, self.max_messages)
                self._sessions[session_id] = session
                while len(self._sessions) > self.max_sessions:
                    evicted_id, _ = self._sessions.popitem(last=False)
                    logger.debug(f"Evicted conversation {evicted_id}")
            else:
                self._sessions.move_to_end(session_id)
            return session

    def reset(self, session_id: Optional[str] = None) -> ConversationSession:
        """Start the conversation over, keeping its id if one is given"""
        session = self.get_or_create(session_id)
        session.clear()
        return session

    def __len__(self):
        with self._lock:
            return len(self._sessions)


def format_card(card: Dict[str, Any]) -> str:
    lines = [f"Name: {card.get('name')}"]
    if card.get('mana_cost'):
        lines.append(f"Mana Cost: {card['mana_cost']}")
    if card.get('type'):
        lines.append(f"Type: {card['type']}")
    if card.get('text'):
        lines.append(f"Text: {card['text']}")
    if card.get('power') is not None and card.get('toughness') is not None:
        lines.append(f"Power/Toughness: {card['power']}/{card['toughness']}")
    if card.get('loyalty'):
        lines.append(f"Loyalty: {card['loyalty']}")
    return "\n".join(lines)


def format_rules(rules: List[Dict[str, Any]]) -> str:
    return "\n".join(f"{rule['rule_number']}. {rule['text']}" for rule in rules)


class RulingAssistant:
    def __init__(self, rules_service=None, client=None, model=None):
        self.rules_service = rules_service
        self._client = client
        self.model = model or LLM_CONFIG["MODEL"]

    @property
    def client(self):
        if self._client is None:
            self._client = OpenAI(api_key=os.getenv("OPENAI_API_KEY"))
        return self._client

    def build_system_prompt(self, question: str, card=None, mentioned_cards=None) -> str:
        sections = [SYSTEM_PROMPT]

        if card:
            sections.append("Card in question:\n" + format_card(card))

        for other in mentioned_cards or []:
            sections.append("Also mentioned:\n" + format_card(other))

        if self.rules_service is not None:
            rules = self.rules_service.find_relevant_rules(question)
            if rules:
                sections.append("Relevant Comprehensive Rules:\n" + format_rules(rules))

        return "\n\n".join(sections)

    def get_card_ruling(self, question: str, card=None, conversation=None, mentioned_cards=None) -> str:
        """Ask the model for a ruling. conversation is the prior message list, oldest first."""
        messages = [{"role": "system", "content": self.build_system_prompt(question, card, mentioned_cards)}]
        messages.extend(conversation or [])
        messages.append({"role": "user", "content": question})

        logger.debug(f"Requesting ruling from {self.model} with {len(messages)} messages")
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=LLM_CONFIG["MAX_TOKENS"],
            temperature=LLM_CONFIG["TEMPERATURE"]
        )
        return response.choices[0].message.content or ""

    def ask(self, session: ConversationSession, question: str, card=None, mentioned_cards=None) -> str:
        """Answer question within session, recording both sides of the exchange"""
        history = session.to_list()
        answer = self.get_card_ruling(question, card, history, mentioned_cards)

        session.add_message("user", question)
        session.add_message("assistant", answer)
        return answer
