"""
Jovika Kito v2.0 — Input Classifier (Rule-Based)

Fixed keyword/regex heuristics. No LLM. Everything the state machine needs to know
about a message goes through classify(); the detectors below are the building blocks.

Categories:
    EMPTY            — nothing usable (blank, only punctuation)
    ACK              — pure acknowledgement ("ok", "sim", "certo", "entendi", 👍)
    AUDIO_REQUEST    — wants to hear a phrase ("audio: Good morning", "pronúncia de bonjour")
    MODE_SWITCH      — "modo conversa" / "modo aula" (free chat vs guided lesson)
    LANGUAGE_CHOICE  — picks a target language (only meaningful in ask_language)
    NAME             — introduces themselves (only meaningful in ask_name)
    ANSWER           — anything else while learning (a repetition attempt)
    OTHER            — anything else

extras always carries "sales_intent" (bool) for the paywall gate.
"""

import re
import unicodedata
from typing import Literal, Optional

Category = Literal[
    "EMPTY", "ACK", "AUDIO_REQUEST", "MODE_SWITCH", "LANGUAGE_CHOICE", "NAME", "ANSWER", "OTHER",
]


# ─── Normalization ───────────────────────────────────────────────────────────

def normalize(text: str) -> str:
    """Lowercase, strip accents, collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return " ".join(stripped.split())


_TOKEN_RE = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> list[str]:
    """Normalized alphanumeric tokens. Punctuation and emoji are dropped."""
    return _TOKEN_RE.findall(normalize(text))


# ─── Acknowledgement Detector ────────────────────────────────────────────────
# An ack carries no answerable content. It must never count as a repetition.

ACK_WORDS = frozenset({
    "ok", "okay", "okey", "oki", "okk", "k", "kk",
    "sim", "s", "ss", "certo", "entendi", "percebi", "claro", "beleza", "blz",
    "fixe", "show", "top", "pronto", "combinado", "bora", "vamos", "ta", "bem",
    "ya", "yah", "yes", "yeah", "yep", "hmm", "hm", "uhum", "aham",
    "obrigado", "obrigada", "valeu", "tranquilo",
})

ACK_PHRASES = frozenset({
    "ta bem", "esta bem", "ta certo", "esta certo", "tudo bem", "tudo certo",
    "ja entendi", "ja percebi", "ok obrigado", "ok obrigada", "muito bem",
})

ACK_GLYPHS = frozenset({
    "👍", "👍🏻", "👍🏼", "👍🏽", "👍🏾", "👍🏿", "👌", "🙏", "✅", "👏", "🙂", "😊", "😀", "😁",
    "❤️", "❤",
})


def is_ack_only(text: str) -> bool:
    """
    True when the whole message is an acknowledgement:
    a glyph from ACK_GLYPHS, an ack phrase, or up to three ack words ("ok ok", "sim!").
    """
    if not text or not text.strip():
        return False

    compact = "".join(text.split())
    if compact and _only_glyphs(compact):
        return True

    tokens = tokenize(text)
    if not tokens:
        return False
    joined = " ".join(tokens)
    if joined in ACK_PHRASES:
        return True
    return len(tokens) <= 3 and all(tok in ACK_WORDS for tok in tokens)


def _only_glyphs(compact: str) -> bool:
    remaining = compact
    # Longest glyphs first so skin-tone variants match whole
    for glyph in sorted(ACK_GLYPHS, key=len, reverse=True):
        remaining = remaining.replace(glyph, "")
    # Variation selectors left behind by emoji keyboards
    remaining = remaining.replace("\ufe0f", "")
    return remaining == ""


# ─── Language Choice Detector ────────────────────────────────────────────────

_ENGLISH_RE = re.compile(r"\b(ingles|inglesa|english|engles|ingels)\b")
_FRENCH_RE = re.compile(r"\b(frances|francesa|french|francais|franses)\b")
_BOTH_RE = re.compile(r"\b(os dois|as duas|ambos|ambas|both)\b")


def detect_language(text: str) -> Optional[str]:
    """
    "en", "fr", "both", or None.
    Works on accent-stripped text so "inglês", "ingles" and "English" all match.
    """
    normalized = normalize(text)
    wants_english = bool(_ENGLISH_RE.search(normalized))
    wants_french = bool(_FRENCH_RE.search(normalized))
    if (wants_english and wants_french) or _BOTH_RE.search(normalized):
        return "both"
    if wants_english:
        return "en"
    if wants_french:
        return "fr"
    return None


# ─── Name Extractor ──────────────────────────────────────────────────────────

_NAME = r"([^\W\d_]{2,})"

# Priority order: first match wins
NAME_PATTERNS = [
    re.compile(r"\b(?:o\s+)?meu\s+nome\s+[eé]\s+" + _NAME, re.IGNORECASE),
    re.compile(r"\bme\s+chamo\s+" + _NAME, re.IGNORECASE),
    re.compile(r"\bchamo-me\s+" + _NAME, re.IGNORECASE),
    re.compile(r"\bpode(?:s)?\s+(?:me\s+)?chamar(?:-me)?\s+(?:de\s+)?" + _NAME, re.IGNORECASE),
    re.compile(r"\bmy\s+name\s+is\s+" + _NAME, re.IGNORECASE),
    re.compile(r"\bje\s+m'appelle\s+" + _NAME, re.IGNORECASE),
    re.compile(r"\bsou\s+(?:a|o)\s+" + _NAME, re.IGNORECASE),
    re.compile(r"\bsou\s+" + _NAME, re.IGNORECASE),
    re.compile(r"\bi\s*'?\s*m\s+" + _NAME, re.IGNORECASE),
    re.compile(r"\bi\s+am\s+" + _NAME, re.IGNORECASE),
    re.compile(r"\baqui\s+[eé]\s+(?:a|o)\s+" + _NAME, re.IGNORECASE),
]

NAME_STOPWORDS = frozenset({
    "oi", "ola", "ole", "hello", "hi", "hey", "bom", "boa", "dia", "tarde", "noite",
    "tudo", "bem", "eu", "sou", "me", "meu", "minha", "nome", "chamo", "chama",
    "o", "a", "os", "as", "e", "de", "da", "do", "um", "uma", "aqui", "prof",
    "professor", "kito", "my", "name", "is", "am", "im", "the", "quero", "queria",
    "aprender", "nao", "sim", "ok", "obrigado", "obrigada", "estou", "to", "bue",
    "boas", "salut", "bonjour", "good", "morning", "afternoon", "evening",
})

GREETING_WORDS = frozenset({
    "oi", "ola", "ole", "hello", "hi", "hey", "bom", "boa", "boas", "dia", "tarde",
    "noite", "tudo", "bem", "salut", "bonjour", "good", "morning", "afternoon",
    "evening", "e", "ai", "professor", "prof", "kito",
})


def _format_name(raw: str) -> str:
    return raw[:1].upper() + raw[1:].lower()


def has_name_content(text: str) -> bool:
    """False for blank, ack-only, or greeting-only messages."""
    tokens = tokenize(text)
    if not tokens or is_ack_only(text):
        return False
    return not all(tok in GREETING_WORDS for tok in tokens)


def extract_name(text: str) -> Optional[str]:
    """
    Introduction patterns in priority order, then the first token that is not a
    stopword and has at least two letters. None when nothing qualifies.
    """
    if not text:
        return None

    for pattern in NAME_PATTERNS:
        match = pattern.search(text)
        if match and normalize(match.group(1)) not in NAME_STOPWORDS:
            return _format_name(match.group(1))

    for word in re.findall(r"[^\W\d_]+", text):
        if len(word) >= 2 and normalize(word) not in NAME_STOPWORDS:
            return _format_name(word)
    return None


# ─── Audio Request Detector ──────────────────────────────────────────────────

_AUDIO_REQUEST_RE = re.compile(
    r"\b(audio|audios|pronuncia|pronunciar|pronuncio|pronunciacao|como se le|"
    r"como se pronuncia|como se diz|manda voz|mensagem de voz|quero ouvir|ouvir)\b"
)

# Delimiter patterns, tried in order; group 1 is the phrase
AUDIO_PHRASE_PATTERNS = [
    re.compile(r"[áa]udio\s*[:\-–]\s*(.+)", re.IGNORECASE),
    re.compile(r"pron[úu]ncia\s*[:\-–]\s*(.+)", re.IGNORECASE),
    re.compile(r"[\"“‘](.+?)[\"”’]"),
    re.compile(r"[áa]udio\s+(?:de|do|da|para|pra)\s+(.+)", re.IGNORECASE),
    re.compile(r"pron[úu]ncia\s+(?:de|do|da)\s+(.+)", re.IGNORECASE),
    re.compile(r"como\s+se\s+pronuncia\s+(.+)", re.IGNORECASE),
    re.compile(r"como\s+se\s+l[êe]\s+(.+)", re.IGNORECASE),
    re.compile(r"como\s+se\s+diz\s+(.+)", re.IGNORECASE),
    re.compile(r"pronunciar\s+(.+)", re.IGNORECASE),
    re.compile(r"pron[úu]ncia\s+(.+)", re.IGNORECASE),
]


def is_audio_request(text: str) -> bool:
    return bool(_AUDIO_REQUEST_RE.search(normalize(text)))


def extract_audio_phrase(text: str) -> Optional[str]:
    """The phrase the student wants to hear, or None if they did not say."""
    if not text:
        return None
    for pattern in AUDIO_PHRASE_PATTERNS:
        match = pattern.search(text)
        if match:
            phrase = match.group(1).strip().strip("\"“”'‘’").rstrip("?!.").strip()
            if phrase and tokenize(phrase):
                return phrase
    return None


# ─── Chat Mode Detector ──────────────────────────────────────────────────────

_CHAT_MODE_RE = re.compile(r"\b(modo conversa|modo livre|modo chat|conversa livre|vamos conversar)\b")
_LESSON_MODE_RE = re.compile(r"\b(modo aula|modo licao|voltar a aula|continuar a aula|continuar aula)\b")


def detect_chat_mode(text: str) -> Optional[str]:
    """Returns "chat", "lesson", or None."""
    normalized = normalize(text)
    if _CHAT_MODE_RE.search(normalized):
        return "chat"
    if _LESSON_MODE_RE.search(normalized):
        return "lesson"
    return None


# ─── Sales Intent Detector ───────────────────────────────────────────────────

_SALES_RE = re.compile(
    r"\b(premium|pagar|pago|pagamento|preco|precos|quanto custa|custa|assinar|"
    r"assinatura|subscrever|subscricao|plano|planos|comprar|desbloquear|"
    r"mensalidade|valor|acesso|renovar|renovacao)\b"
)


def is_sales_intent(text: str) -> bool:
    return bool(_SALES_RE.search(normalize(text)))


# ─── Main Classification Function ────────────────────────────────────────────

def classify(text: str, stage: str = "") -> dict:
    """Classify one inbound message in the context of the student's stage.

    Args:
        text: Inbound message text (or audio transcription)
        stage: Current stage value ("ask_name", "ask_language", "learning")

    Returns:
        dict with keys:
            - category: Category string
            - confidence: 0.0-1.0 float
            - extras: dict (sales_intent always; name / language / phrase when found)
    """
    extras = {"sales_intent": is_sales_intent(text or "")}

    if not text or (not tokenize(text) and not is_ack_only(text)):
        return {"category": "EMPTY", "confidence": 1.0, "extras": extras}

    if is_ack_only(text):
        return {"category": "ACK", "confidence": 0.99, "extras": extras}

    if stage == "ask_name":
        extras["name"] = extract_name(text) if has_name_content(text) else None
        extras["has_content"] = has_name_content(text)
        return {"category": "NAME", "confidence": 0.9, "extras": extras}

    if stage == "ask_language":
        language = detect_language(text)
        if language:
            extras["language"] = language
            return {"category": "LANGUAGE_CHOICE", "confidence": 0.95, "extras": extras}
        return {"category": "OTHER", "confidence": 0.5, "extras": extras}

    if is_audio_request(text):
        extras["phrase"] = extract_audio_phrase(text)
        return {"category": "AUDIO_REQUEST", "confidence": 0.9, "extras": extras}

    mode = detect_chat_mode(text)
    if mode:
        extras["mode"] = mode
        return {"category": "MODE_SWITCH", "confidence": 0.9, "extras": extras}

    if stage == "learning":
        return {"category": "ANSWER", "confidence": 0.8, "extras": extras}

    return {"category": "OTHER", "confidence": 0.5, "extras": extras}
