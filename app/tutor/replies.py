"""
Jovika Kito v2.0 — Reply Texts
Every fixed message Kito sends, in Portuguese. Handlers never inline text.
"""

from typing import Optional

from app.config import CHECKOUT_URL, DEFAULT_STUDENT_NAME, SUPPORTED_LANGUAGES
from app.tutor.state_machine import Position


def _who(name: Optional[str]) -> str:
    return name or DEFAULT_STUDENT_NAME


def language_label(language: Optional[str]) -> str:
    return SUPPORTED_LANGUAGES.get(language or "", "inglês")


# ─── Onboarding ──────────────────────────────────────────────────────────────

def welcome(profile_name: Optional[str]) -> str:
    greeting = f"Olá, {profile_name}! 👋" if profile_name else "Olá! 👋"
    return (
        f"{greeting} Eu sou o Kito, o teu professor de línguas da Jovika Academy.\n"
        "Vamos aprender juntos, passo a passo, pelo WhatsApp.\n\n"
        "Antes de começar: como queres que eu te chame?"
    )


def ask_name_again() -> str:
    return "Ainda não sei o teu nome 🙂 Como queres que eu te chame?"


def ask_language(name: Optional[str]) -> str:
    return (
        f"Prazer, {_who(name)}! 😊\n"
        "Que língua queres aprender comigo: *inglês* ou *francês*?"
    )


def ask_language_again() -> str:
    return "Escolhe só uma língua para começarmos: responde *inglês* ou *francês*."


def language_chosen(name: Optional[str], language: Optional[str]) -> str:
    return f"Boa escolha, {_who(name)}! Vamos começar o {language_label(language)}. 🚀"


# ─── Lessons ─────────────────────────────────────────────────────────────────

def repeat_prompt(position: Position) -> str:
    header = f"📘 Lição {position.lesson_index + 1}: {position.lesson.title}"
    return (
        f"{header}\n"
        f"Parte {position.part_index + 1} de {position.part_count}. Repete comigo:\n\n"
        f"*{position.part.text}*\n"
        f"(pronúncia: {position.part.phonetic_hint})"
    )


def ack_is_not_answer(expected_text: str) -> str:
    return f"Quase! Agora escreve a frase, não só \"ok\" 😉\n\nRepete: *{expected_text}*"


def try_again(expected_text: str, phonetic_hint: Optional[str] = None) -> str:
    text = f"Ainda não ficou bem. Tenta outra vez:\n\n*{expected_text}*"
    if phonetic_hint:
        text += f"\n(pronúncia: {phonetic_hint})"
    return text


def success(position: Position) -> str:
    return "Muito bem! ✅\n\n" + repeat_prompt(position)


# ─── Audio ───────────────────────────────────────────────────────────────────

def audio_which_phrase() -> str:
    return "Qual frase queres ouvir? Escreve assim: *áudio: Good morning*"


def audio_fallback(phrase: str, phonetic_hint: Optional[str] = None) -> str:
    text = f"Não consegui gerar o áudio agora 😕 Lê em voz alta:\n\n*{phrase}*"
    if phonetic_hint:
        text += f"\n(pronúncia: {phonetic_hint})"
    return text


def audio_not_understood() -> str:
    return "Não consegui perceber o teu áudio 😕 Podes escrever a mensagem?"


# ─── Chat mode ───────────────────────────────────────────────────────────────

def chat_mode_on() -> str:
    return "Combinado! Agora podemos conversar livremente 💬 Quando quiseres voltar, escreve *modo aula*."


def chat_mode_off() -> str:
    return "De volta à aula! 📘"


# ─── Fallbacks ───────────────────────────────────────────────────────────────

def generic_reprompt() -> str:
    return "Estou aqui 🙂 Escreve a tua pergunta ou a frase que queres praticar."


def apology() -> str:
    return "Desculpa, tive um problema técnico 🙏 Podes repetir a tua mensagem?"


# ─── Paywall ─────────────────────────────────────────────────────────────────

def paywall_notice(name: Optional[str]) -> str:
    text = (
        f"Olá, {_who(name)}! As aulas com o Kito fazem parte do plano *Premium* da Jovika Academy.\n"
        "Com o Premium tens aulas guiadas, correção e áudios de pronúncia todos os dias."
    )
    if CHECKOUT_URL:
        text += f"\n\nAtiva aqui: {CHECKOUT_URL}"
    return text


def expired_notice(name: Optional[str]) -> str:
    text = (
        f"{_who(name)}, o teu plano Premium terminou. ⏳\n"
        "Renova para continuares as aulas de onde paraste."
    )
    if CHECKOUT_URL:
        text += f"\n\nRenovar: {CHECKOUT_URL}"
    return text
