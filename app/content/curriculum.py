"""
Jovika Kito v2.0 — Curriculum

Guided-repetition path per target language:
    language → ordered Lessons → ordered Parts {text, phonetic_hint}

Static and read-only for the process lifetime (frozen dataclasses, tuples,
read-only mapping). Lesson titles are in Portuguese; part texts are what the
student must repeat.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional


@dataclass(frozen=True)
class Part:
    """Smallest unit of repetition content."""
    text: str              # "Nice to meet you"
    phonetic_hint: str     # "náiss tu mít iú"


@dataclass(frozen=True)
class Lesson:
    id: str                # "en_a0_1"
    title: str             # "Cumprimentos e apresentações"
    level: str             # "A0"
    goal: str
    parts: tuple[Part, ...]


_ENGLISH = (
    Lesson(
        id="en_a0_1",
        title="Cumprimentos e apresentações",
        level="A0",
        goal="Aprender a dizer olá, despedir-se e apresentar-se de forma simples.",
        parts=(
            Part("Hello, my name is", "hélou, mai nêim iz"),
            Part("Nice to meet you", "náiss tu mít iú"),
            Part("I am from Angola", "ai ém frâm angôla"),
            Part("I work as a", "ai uârk éz a"),
        ),
    ),
    Lesson(
        id="en_a0_2",
        title="Falar sobre idade, cidade e país",
        level="A0",
        goal="Conseguir dizer a idade, de onde é e onde vive.",
        parts=(
            Part("I am twenty years old", "ai ém tuênti íârs ôld"),
            Part("I live in Luanda", "ai liv in luânda"),
            Part("Where are you from?", "uér ár iú frâm"),
            Part("I am from Brazil", "ai ém frâm brazíl"),
        ),
    ),
    Lesson(
        id="en_a0_3",
        title="Rotina diária simples",
        level="A1",
        goal="Descrever a rotina do dia a dia com frases básicas no presente simples.",
        parts=(
            Part("I wake up at seven", "ai uêik âp ét séven"),
            Part("I go to work by bus", "ai gôu tu uârk bai bâss"),
            Part("I have lunch at noon", "ai hév lânch ét nún"),
            Part("I go to bed at eleven", "ai gôu tu béd ét iléven"),
        ),
    ),
)

_FRENCH = (
    Lesson(
        id="fr_a0_1",
        title="Cumprimentos básicos em francês",
        level="A0",
        goal="Cumprimentar, despedir-se e dizer como está em francês.",
        parts=(
            Part("Bonjour, comment ça va ?", "bonjúr, comân sa vá"),
            Part("Ça va bien, merci", "sa vá biân, mérsí"),
            Part("Au revoir", "ô revuár"),
            Part("Bonne nuit", "bón nuí"),
        ),
    ),
    Lesson(
        id="fr_a0_2",
        title="Apresentar-se em francês",
        level="A0",
        goal="Dizer o nome, idade e país em francês.",
        parts=(
            Part("Je m'appelle Ana", "je mapél ana"),
            Part("J'ai vingt ans", "jé vân tân"),
            Part("Je viens d'Angola", "je viân dangolá"),
            Part("J'habite à Luanda", "jabít a luandá"),
        ),
    ),
    Lesson(
        id="fr_a0_3",
        title="Rotina simples em francês",
        level="A1",
        goal="Descrever o dia a dia com verbos básicos em francês.",
        parts=(
            Part("Je me lève à sept heures", "je me lév a sét êr"),
            Part("Je prends le bus", "je prân le bús"),
            Part("Je travaille le matin", "je traváie le matân"),
            Part("Je me couche à onze heures", "je me cúch a ônz êr"),
        ),
    ),
)

CURRICULUM = MappingProxyType({
    "en": _ENGLISH,
    "fr": _FRENCH,
})

DEFAULT_LANGUAGE = "en"


# ─── Lookups ─────────────────────────────────────────────────────────────────

def get_lessons(language: Optional[str]) -> tuple[Lesson, ...]:
    """Lessons for a language. Unknown languages fall back to English."""
    return CURRICULUM.get(language or DEFAULT_LANGUAGE, CURRICULUM[DEFAULT_LANGUAGE])


def clamp_position(language: Optional[str], lesson_index: int, part_index: int) -> tuple[int, int]:
    """
    Coerce indices into the curriculum bounds. Out-of-range values become the
    last valid index; negatives become 0.
    """
    lessons = get_lessons(language)
    lesson_index = min(max(lesson_index, 0), len(lessons) - 1)
    parts = lessons[lesson_index].parts
    part_index = min(max(part_index, 0), len(parts) - 1)
    return lesson_index, part_index


def get_lesson(language: Optional[str], lesson_index: int) -> Lesson:
    lesson_index, _ = clamp_position(language, lesson_index, 0)
    return get_lessons(language)[lesson_index]


def find_part_by_text(language: Optional[str], text: str) -> Optional[Part]:
    """Look up a part by its exact text (used to attach phonetic hints)."""
    for lesson in get_lessons(language):
        for part in lesson.parts:
            if part.text == text:
                return part
    return None
