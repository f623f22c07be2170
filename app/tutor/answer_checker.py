"""
Jovika Kito v2.0 — Answer Checker
Scores a repetition attempt against the expected phrase.

DETERMINISTIC PYTHON. No LLM.

Score = token overlap + prefix bonus, capped at 1.0:
  - overlap: student tokens (repeats included) found in the expected phrase,
             divided by the expected phrase's distinct token count
  - prefix:  +0.15 if the student's normalized text starts with the first
             6 normalized characters of the expected phrase

An acknowledgement ("ok", "sim", 👍) is never an answer, whatever it scores.
"""

from dataclasses import dataclass

from app.config import SIMILARITY_PASS_THRESHOLD, PREFIX_BONUS, PREFIX_BONUS_CHARS
from app.tutor.input_classifier import is_ack_only, tokenize


@dataclass
class Verdict:
    """Result of checking one repetition attempt."""
    correct: bool
    verdict: str  # "CORRECT", "RETRY", "ACK_ONLY"
    score: float
    expected: str


def similarity_score(expected: str, text: str) -> float:
    """0.0 for empty input; 1.0 when text equals expected."""
    expected_tokens = tokenize(expected)
    student_tokens = tokenize(text)
    if not expected_tokens or not student_tokens:
        return 0.0

    expected_set = set(expected_tokens)
    hits = sum(1 for t in student_tokens if t in expected_set)
    score = min(hits / len(expected_set), 1.0)

    prefix = " ".join(expected_tokens)[:PREFIX_BONUS_CHARS]
    if prefix and " ".join(student_tokens).startswith(prefix):
        score += PREFIX_BONUS

    return min(score, 1.0)


def check_repetition(expected: str, text: str) -> Verdict:
    """Decide whether text satisfies the expected phrase."""
    if is_ack_only(text):
        return Verdict(correct=False, verdict="ACK_ONLY", score=0.0, expected=expected)

    score = similarity_score(expected, text)
    if score >= SIMILARITY_PASS_THRESHOLD:
        return Verdict(correct=True, verdict="CORRECT", score=score, expected=expected)
    return Verdict(correct=False, verdict="RETRY", score=score, expected=expected)
