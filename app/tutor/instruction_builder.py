"""
Jovika Kito v2.0 — Instruction Builder
Builds the chat messages for the open-ended fallback.
Kito's personality, tone, and rules are embedded here.

CRITICAL RULES (enforced in every prompt):
1. Reply in European/Angolan Portuguese, "tu" form
2. Short WhatsApp messages: max 4 sentences
3. Example phrases in the target language, with a Portuguese explanation
4. One idea per message
5. Correct mistakes gently and show the correct form
"""

from app.config import LLM_HISTORY_WINDOW, SUPPORTED_LANGUAGES
from app.content.curriculum import get_lesson
from app.state.session import StudentRecord

KITO_BASE = """És o Kito, professor de línguas da Jovika Academy, a falar com um aluno pelo WhatsApp.

PERSONALIDADE: Simpático, paciente, motivador. Tratas o aluno por "tu".

FORMATO (RIGOROSO):
- Respondes sempre em português
- No máximo 4 frases curtas, estilo WhatsApp
- Uma ideia por mensagem
- Frases de exemplo na língua que o aluno está a aprender, entre *asteriscos*

CORREÇÃO:
- Se o aluno errar, mostra a forma correta sem o desmotivar
- Nunca inventes que o aluno acertou quando errou
"""

NO_LANGUAGE_YET = """
O aluno ainda não escolheu a língua. Convida-o a escolher entre inglês e francês.
"""


def _student_block(record: StudentRecord) -> str:
    lines = [f"\nALUNO: {record.name or 'sem nome'}", f"NÍVEL: {record.level}"]
    if record.target_language:
        language = SUPPORTED_LANGUAGES.get(record.target_language, record.target_language)
        lesson = get_lesson(record.target_language, record.lesson_index)
        lines.append(f"LÍNGUA: {language}")
        lines.append(f"LIÇÃO ATUAL: {lesson.title} ({lesson.goal})")
    if record.chat_mode == "chat":
        lines.append("MODO: conversa livre (o aluno pediu para conversar fora da aula)")
    return "\n".join(lines) + "\n"


def build_system_prompt(record: StudentRecord) -> str:
    prompt = KITO_BASE + _student_block(record)
    if not record.target_language:
        prompt += NO_LANGUAGE_YET
    return prompt


def build_messages(record: StudentRecord, user_text: str) -> list[dict]:
    """
    System prompt + last LLM_HISTORY_WINDOW history entries + the new message.
    History entries are already {"role", "content"} dicts.
    """
    history = [
        {"role": h["role"], "content": h["content"]}
        for h in record.history[-LLM_HISTORY_WINDOW:]
        if h.get("role") in ("user", "assistant") and h.get("content")
    ]
    return (
        [{"role": "system", "content": build_system_prompt(record)}]
        + history
        + [{"role": "user", "content": user_text}]
    )
