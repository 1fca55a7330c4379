"""Prompt assembly for overlay task generation"""

import re
from collections.abc import Sequence

from .options import Lang, Mode, StreamKind, TaskType

MAX_LINE_CHARS = 140

SYSTEM_PROMPT = (
    f"You generate one single-line output for a live stream overlay. "
    f"Keep it ≤{MAX_LINE_CHARS} chars, no quotes, no numbering, no emojis unless natural. TOS-safe."
)

GUARDRAIL = (
    "Stay TOS-safe: no slurs, hate, harassment, explicit sexual content, "
    "dangerous acts, or glorifying illegal activity."
)

TONES: dict[Lang, dict[Mode, str]] = {
    Lang.EN: {
        Mode.FUNNY: "Playful, witty, no crudeness.",
        Mode.MOTIVATOR: "Supportive, energizing.",
        Mode.SERIOUS: "Concise and focused.",
        Mode.CHILL: "Relaxed, low-pressure.",
        Mode.URBAN: "Modern street/urban slang vibe, TOS-safe (no slurs).",
        Mode.EDGY: "Sharper/roast-y but TOS-safe (no harassment).",
    },
    Lang.RU: {
        Mode.FUNNY: "Лёгкий юмор, остроумно, без пошлости.",
        Mode.MOTIVATOR: "Поддерживай и заряжай энергией.",
        Mode.SERIOUS: "Коротко, по делу, уверенно.",
        Mode.CHILL: "Расслабленно и ненавязчиво.",
        Mode.URBAN: "Современный уличный сленг и ритм, TOS-safe (без оскорблений).",
        Mode.EDGY: "Острее/подначивание, но без травли и оскорблений (TOS-safe).",
    },
    Lang.ES: {
        Mode.FUNNY: "Ligero y con humor, sin vulgaridad.",
        Mode.MOTIVATOR: "Apoya y da energía.",
        Mode.SERIOUS: "Conciso y directo.",
        Mode.CHILL: "Relajado y sin presión.",
        Mode.URBAN: "Jerga urbana moderna, TOS-safe (sin insultos).",
        Mode.EDGY: "Más agudo/sarcástico, pero sin acoso (TOS-safe).",
    },
}

STREAM_HINTS: dict[Lang, dict[StreamKind, str]] = {
    Lang.EN: {
        StreamKind.IRL: "Context: IRL (on the move).",
        StreamKind.JUST_CHATTING: "Context: Just Chatting (at desk).",
        StreamKind.OTHER: "Context: mixed.",
    },
    Lang.RU: {
        StreamKind.IRL: "Контекст: IRL (на ходу/на улице).",
        StreamKind.JUST_CHATTING: "Контекст: Just Chatting (у стола, общение).",
        StreamKind.OTHER: "Контекст: разное.",
    },
    Lang.ES: {
        StreamKind.IRL: "Contexto: IRL (en movimiento).",
        StreamKind.JUST_CHATTING: "Contexto: Just Chatting (a cámara).",
        StreamKind.OTHER: "Contexto: variado.",
    },
}

# Banter talks to chat; tasks and questions go to the streamer
AUDIENCE_HINTS: dict[Lang, dict[bool, str]] = {
    Lang.EN: {
        True: "Sometimes address the viewers in 1-2 words (e.g., “chat, thoughts?”).",
        False: "Address the task to the streamer.",
    },
    Lang.RU: {
        True: "Иногда обращайся к зрителям 1-2 словами (напр. «чат, как думаете?»).",
        False: "Адресуй задание стримеру.",
    },
    Lang.ES: {
        True: "A veces dirígete a los espectadores en 1-2 palabras (p. ej., “chat, ¿qué opinan?”).",
        False: "Dirige la tarea al streamer.",
    },
}

STYLES: dict[Lang, dict[TaskType, str]] = {
    Lang.EN: {
        TaskType.QUESTION: "Give 1 *alive* question with emotion, no clichés, ≤140 chars, no numbering, NO quotes, one single line.",
        TaskType.BANTER: "Give 1 banter line with humor, ≤140 chars, no numbering, no quotes.",
        TaskType.TASK: "Give 1 concrete micro-task for the streamer, ≤140 chars, no numbering, no quotes.",
    },
    Lang.RU: {
        TaskType.QUESTION: "Дай 1 *живой* вопрос с эмоцией, без клише, до 140 символов, без нумерации, БЕЗ кавычек, только строка.",
        TaskType.BANTER: "Дай 1 реплику/подкол с юмором, до 140 символов, без нумерации и кавычек.",
        TaskType.TASK: "Дай 1 конкретное микро-задание для стримера, до 140 символов, без нумерации и кавычек.",
    },
    Lang.ES: {
        TaskType.QUESTION: "Da 1 pregunta *viva* con emoción, sin clichés, máx 140 caracteres, sin numeración, SIN comillas, solo una línea.",
        TaskType.BANTER: "Da 1 línea/banter con humor, máx 140 caracteres, sin numeración ni comillas.",
        TaskType.TASK: "Da 1 micro-tarea concreta para el streamer, máx 140 caracteres, sin numeración ni comillas.",
    },
}

AVOID_PREFIX: dict[Lang, str] = {
    Lang.EN: "Avoid semantic duplicates of recent ones: ",
    Lang.RU: "Избегай повторов по смыслу с недавними: ",
    Lang.ES: "Evita solaparte con recientes: ",
}

NAME_PREFIX: dict[Lang, str] = {
    Lang.EN: "Streamer name: ",
    Lang.RU: "Имя стримера: ",
    Lang.ES: "Nombre del streamer: ",
}

FALLBACK_LINES: list[str] = [
    "Chat, rate the streamer’s fit 1–10 — be honest.",
    "Tell us your most controversial food take in 10s.",
    "Pick one: sleep or grind — and why?",
    "Show your phone lockscreen for 3 seconds 😏",
    "Do a 7-word life advice, no more, no less.",
    "Chat, drop one dare (PG-13) for the next minute.",
    "Tell a tiny L you took this week.",
    "If you vanished for a day — what’s the move?",
    "Name one habit you’re trying to fix.",
    "Give your best two-line roast of yourself.",
]

_LIST_MARKER_RE = re.compile(r"^\s*[\-\d.)\]]+\s*")


def tone_instruction(mode: Mode, lang: Lang) -> str:
    return TONES[lang][mode]


def build_prompt(
    mode: Mode,
    task_type: TaskType,
    stream_kind: StreamKind,
    lang: Lang,
    recent: Sequence[str] = (),
    name: str = "",
) -> str:
    """Assemble the user prompt for one generation attempt"""
    avoid = ""
    if recent:
        if lang is Lang.EN:
            avoid = AVOID_PREFIX[lang] + " | ".join(recent)
        else:
            avoid = AVOID_PREFIX[lang] + "; ".join(f"“{r}”" for r in recent) + "."

    who = f"{NAME_PREFIX[lang]}{name}." if name else ""

    sections = [
        GUARDRAIL,
        tone_instruction(mode, lang),
        STREAM_HINTS[lang][stream_kind],
        AUDIENCE_HINTS[lang][task_type is TaskType.BANTER],
        STYLES[lang][task_type],
        avoid,
        who,
    ]
    return "\n".join(s for s in sections if s)


def first_line(text: str) -> str:
    """First non-empty line of a completion with any list marker stripped"""
    for raw in text.splitlines():
        line = _LIST_MARKER_RE.sub("", raw).strip()
        if line:
            return line
    return ""
