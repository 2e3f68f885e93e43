"""
services/context_extractor.py
-----------------------------
Derives the auxiliary "context" string and entity hints sent with each chat
turn.

Follow-up questions such as "what about the 410?" mean little on their own,
and after a degraded (fallback) turn the workflow has lost its own memory of
the thread. The extractor looks at the recent window and spells the topic
out:

  Regarding products: hydraulic, pump; part numbers: AT123456, what about this one
  (Continuing from previous questions: "..."; last answer: "...")

It is a pure function of its inputs and never raises.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

HISTORY_WINDOW = 6
TOPIC_COUNT = 3
SHORT_MESSAGE_LENGTH = 40
QUOTE_LENGTH = 200
TOPIC_HINT_LENGTH = 100

STOP_WORDS = frozenset(
    {
        "what", "which", "where", "when", "whom", "whose", "why", "how",
        "this", "that", "these", "those", "there", "their", "they", "them",
        "then", "than", "here", "have", "does", "doing", "done", "with",
        "from", "about", "would", "could", "should", "will", "your", "yours",
        "some", "many", "much", "more", "most", "each", "every", "other",
        "into", "onto", "been", "were", "just", "like", "want", "need",
        "know", "tell", "please", "also", "only", "very", "thanks", "thank",
        "hello", "okay",
    }
)

MANUFACTURERS = (
    "John Deere",
    "Deere",
    "Case",
    "Caterpillar",
    "CAT",
    "Komatsu",
    "Volvo",
    "Hitachi",
    "Kubota",
    "New Holland",
    "Bobcat",
    "Doosan",
    "Liebherr",
    "Tigercat",
    "Timberjack",
)

_MAKE = "|".join(re.escape(name) for name in MANUFACTURERS)
_VEHICLE_PATTERN = re.compile(
    rf"\b(?:(?P<make1>{_MAKE})\s*-?\s*(?P<model1>\d{{3}}[A-Z]{{0,3}})"
    rf"|(?P<model2>\d{{3}}[A-Z]{{0,3}})\s+(?P<make2>{_MAKE}))\b",
    re.IGNORECASE,
)
# Upper-case alphanumerics with at least one digit, so shouted words don't count
_PART_NUMBER_PATTERN = re.compile(r"\b(?=[A-Z0-9]*\d)[A-Z0-9]{5,10}\b")
_WORD_PATTERN = re.compile(r"[a-z][a-z0-9-]*")


@dataclass(frozen=True)
class HistoryMessage:
    role: str  # "user" | "assistant" | "system"
    content: str


@dataclass(frozen=True)
class EntityHints:
    part_numbers: list[str] = field(default_factory=list)
    vehicle_models: list[str] = field(default_factory=list)
    product_types: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, list[str]]:
        return {
            "partNumbers": self.part_numbers,
            "vehicleModels": self.vehicle_models,
            "productTypes": self.product_types,
        }


@dataclass(frozen=True)
class ChatContext:
    context: str
    entities: EntityHints


def _unique(values) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


def topic_products(messages: Sequence[HistoryMessage]) -> list[str]:
    counts: Counter[str] = Counter()
    for message in messages:
        for word in _WORD_PATTERN.findall(message.content.lower()):
            if len(word) >= 4 and word not in STOP_WORDS:
                counts[word] += 1
    return [word for word, _ in counts.most_common(TOPIC_COUNT)]


def part_numbers(texts: Sequence[str]) -> list[str]:
    return _unique(match for text in texts for match in _PART_NUMBER_PATTERN.findall(text))


def _canonical_make(raw: str) -> str:
    for name in MANUFACTURERS:
        if name.lower() == raw.lower():
            return name
    return raw


def vehicle_models(texts: Sequence[str]) -> list[str]:
    found = []
    for text in texts:
        for match in _VEHICLE_PATTERN.finditer(text):
            make = match.group("make1") or match.group("make2")
            model = match.group("model1") or match.group("model2")
            found.append(f"{_canonical_make(make)} {model.upper()}")
    return _unique(found)


def _quote(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > QUOTE_LENGTH:
        text = text[:QUOTE_LENGTH] + "..."
    return f'"{text}"'


def _continuity_clause(window: Sequence[HistoryMessage], is_retry: bool) -> str:
    users = [m.content for m in window if m.role == "user"]
    assistants = [m.content for m in window if m.role == "assistant"]
    parts = []
    if users:
        parts.append(
            "Continuing from previous questions: "
            + " | ".join(_quote(text) for text in users[-2:])
        )
    if assistants:
        parts.append("last answer: " + _quote(assistants[-1]))
    if is_retry and users:
        topic = max(users, key=len)[:TOPIC_HINT_LENGTH]
        parts.append(f"likely topic: {topic}")
    if not parts:
        return ""
    return f" ({'; '.join(parts)})"


def extract_context(
    history: Sequence[HistoryMessage],
    message: str,
    is_retry: bool = False,
) -> ChatContext:
    """
    Build the context string for a new user message.

    With no usable history and no entities in the message itself the
    message is returned unchanged.
    """
    window = [m for m in history if m.role != "system"][-HISTORY_WINDOW:]
    texts = [m.content for m in window] + [message]

    entities = EntityHints(
        part_numbers=part_numbers(texts),
        vehicle_models=vehicle_models(texts),
        product_types=topic_products(window),
    )

    labelled = []
    if entities.product_types:
        labelled.append("products: " + ", ".join(entities.product_types))
    if entities.part_numbers:
        labelled.append("part numbers: " + ", ".join(entities.part_numbers))
    if entities.vehicle_models:
        labelled.append("vehicles: " + ", ".join(entities.vehicle_models))

    context = message
    if labelled:
        context = f"Regarding {'; '.join(labelled)}, {message}"

    if is_retry or len(message) < SHORT_MESSAGE_LENGTH or "?" not in message:
        context += _continuity_clause(window, is_retry)

    return ChatContext(context=context, entities=entities)
