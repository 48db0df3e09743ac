"""
Heuristic Message Classifier

Four independent detectors (question, answer, solution, acknowledgment).
Each adds fixed weights for the signals it finds, caps the total at 1.0 and
returns None below its floor. A message may receive several labels.
"""

import re
from typing import Iterable, List, Optional, Pattern, Tuple

from threadmine.classify.context import ThreadContext
from threadmine.models.classification import Classification, ClassificationType
from threadmine.models.message import CanonicalMessage

QUESTION_FLOOR = 0.2
SOLUTION_FLOOR = 0.25
ACKNOWLEDGMENT_FLOOR = 0.2
ANSWER_BASE = 0.3

QUESTION_STARTERS = [
    "how do i", "how can i", "how to", "how would",
    "what is", "what's", "what are", "what if",
    "where is", "where can", "where do",
    "when should", "when do", "when is",
    "why does", "why is", "why would",
    "who can", "who is", "who knows",
    "can someone", "can anyone", "could someone",
    "is there", "are there",
    "does anyone", "does someone",
    "has anyone", "has someone",
    "should i", "would it",
    "any ideas", "anyone know",
]

HELP_PHRASES = [
    "help me", "stuck", "having trouble", "problem with",
    "error with", "not working", "doesn't work", "can't get",
    "unable to", "trying to figure", "need help",
]

ANSWER_PHRASES = [
    "you can", "you could", "you need to", "you should", "you might",
    "have you tried", "try", "i think", "the issue is", "the problem is",
    "this is because", "it's because", "make sure", "check", "i'd", "i would",
]

SOLUTION_PHRASES = [
    "try this", "here's how", "here is how", "the fix is", "the solution is",
    "to fix this", "to fix it", "you can fix", "solved by", "fixed by",
    "workaround", "try running", "try using", "run this", "the trick is",
]

THANKS_PHRASES = [
    "thank you", "thanks", "thank", "thx", "tysm", "ty",
    "much appreciated", "appreciate it", "cheers",
]

SUCCESS_PHRASES = [
    "that worked", "it worked", "worked", "works now", "it works",
    "working now", "fixed it", "that fixed", "solved it", "that did it",
    "did the trick", "all good now", "problem solved", "resolved",
]

SHORT_AFFIRMATIVES = [
    "ok", "okay", "got it", "perfect", "great", "awesome", "nice",
    "cool", "yes", "yep", "done", "sounds good", "makes sense", "lgtm",
]

POSITIVE_EMOJIS = [
    "👍", "🙏", "🎉", "✅", "❤", "🙌", "💯", "😊", "🚀",
    ":+1:", ":thumbsup:", ":pray:", ":tada:", ":white_check_mark:",
    ":raised_hands:", ":heart:", ":100:", ":rocket:",
]

STEP_PATTERNS = [
    re.compile(r"^\s*\d+[.)]\s", re.MULTILINE),
    re.compile(r"^\s*[-*•]\s", re.MULTILINE),
    re.compile(r"\bfirst\b.*\bthen\b", re.DOTALL),
    re.compile(r"\bstep\s*\d+"),
]

DOCS_URL_PATTERN = re.compile(
    r"docs\.|/docs?/|documentation|readthedocs|/wiki/|/guides?\b|/manual|/reference"
    r"|/api/|developer\.|stackoverflow\.com|github\.com/[^/]+/[^/]+/(?:blob|issues|pull)/",
    re.IGNORECASE,
)


def _phrase_patterns(phrases: Iterable[str], anchored: bool = False) -> List[Tuple[str, Pattern]]:
    """Whole-word patterns: "ty" matches "ty so much" but not "gritty"."""
    prefix = "^" if anchored else r"(?<![a-z0-9])"
    return [(p, re.compile(prefix + re.escape(p) + r"(?![a-z0-9])")) for p in phrases]


_STARTERS = _phrase_patterns(QUESTION_STARTERS, anchored=True)
_HELP = _phrase_patterns(HELP_PHRASES)
_ANSWER = _phrase_patterns(ANSWER_PHRASES)
_SOLUTION = _phrase_patterns(SOLUTION_PHRASES)
_THANKS = _phrase_patterns(THANKS_PHRASES)
_SUCCESS = _phrase_patterns(SUCCESS_PHRASES)
_AFFIRMATIVE = re.compile(r"(?:" + "|".join(re.escape(a) for a in SHORT_AFFIRMATIVES) + r")!*")


def _first_match(text: str, patterns: List[Tuple[str, Pattern]]) -> Optional[str]:
    for phrase, pattern in patterns:
        if pattern.search(text):
            return phrase
    return None


def _lower(content: str) -> str:
    return content.lower().replace("’", "'")


def _result(
    msg: CanonicalMessage, kind: ClassificationType, total: float, signals: List[str], floor: float
) -> Optional[Classification]:
    confidence = round(min(total, 1.0), 2)
    if not signals or confidence < floor:
        return None
    return Classification(message_id=msg.id, type=kind, confidence=confidence, signals=signals)


def classify_question(msg: CanonicalMessage) -> Optional[Classification]:
    text = _lower(msg.content)
    total = 0.0
    signals: List[str] = []

    if "?" in text:
        total += 0.4
        signals.append("question_mark")

    starter = _first_match(text.lstrip(), _STARTERS)
    if starter:
        total += 0.5
        signals.append(f"question_starter:{starter}")

    if len(msg.content) > 20:
        phrase = _first_match(text, _HELP)
        if phrase:
            total += 0.2
            signals.append(f"help_seeking:{phrase}")

    return _result(msg, ClassificationType.QUESTION, total, signals, QUESTION_FLOOR)


def classify_answer(
    msg: CanonicalMessage, context: Optional[ThreadContext]
) -> Optional[Classification]:
    """Replies in a thread that contains a question from someone else."""
    if context is None or not context.has_question or context.is_thread_root:
        return None

    text = _lower(msg.content)
    total = ANSWER_BASE
    signals = ["in_question_thread"]

    phrase = _first_match(text, _ANSWER)
    if phrase:
        total += 0.2
        signals.append(f"answer_phrase:{phrase}")
    if msg.code_blocks:
        total += 0.2
        signals.append("has_code")
    if msg.urls:
        total += 0.1
        signals.append("has_url")
    if len(msg.content) > 100:
        total += 0.1
        signals.append("detailed_response")

    # being in a question thread alone is not enough
    if len(signals) == 1:
        return None
    return _result(msg, ClassificationType.ANSWER, total, signals, ANSWER_BASE)


def classify_solution(msg: CanonicalMessage) -> Optional[Classification]:
    text = _lower(msg.content)
    total = 0.0
    signals: List[str] = []

    if msg.code_blocks:
        total += 0.4
        signals.append("code_block")

    phrase = _first_match(text, _SOLUTION)
    if phrase:
        total += 0.3
        signals.append(f"solution_phrase:{phrase}")

    if any(pattern.search(text) for pattern in STEP_PATTERNS):
        total += 0.2
        signals.append("step_by_step")

    if any(DOCS_URL_PATTERN.search(url) for url in msg.urls):
        total += 0.25
        signals.append("documentation_link")

    return _result(msg, ClassificationType.SOLUTION, total, signals, SOLUTION_FLOOR)


def classify_acknowledgment(msg: CanonicalMessage) -> Optional[Classification]:
    text = _lower(msg.content)
    total = 0.0
    signals: List[str] = []

    thanks = _first_match(text, _THANKS)
    if thanks:
        total += 0.3
        signals.append(f"thanks:{thanks}")

    success = _first_match(text, _SUCCESS)
    if success:
        total += 0.4
        signals.append(f"success:{success}")

    if any(emoji in text for emoji in POSITIVE_EMOJIS):
        total += 0.2
        signals.append("positive_emoji")

    if _AFFIRMATIVE.fullmatch(text.strip()):
        total += 0.25
        signals.append("short_affirmative")

    return _result(msg, ClassificationType.ACKNOWLEDGMENT, total, signals, ACKNOWLEDGMENT_FLOOR)


def classify_message(
    msg: CanonicalMessage, context: Optional[ThreadContext] = None
) -> List[Classification]:
    """Run every detector; returns all labels that cleared their floor."""
    results = [
        classify_question(msg),
        classify_answer(msg, context),
        classify_solution(msg),
        classify_acknowledgment(msg),
    ]
    return [r for r in results if r is not None]
