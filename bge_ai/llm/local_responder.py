"""
Local Responder
===============

In-process fallback that answers common questions about the school without
any network access. It classifies the intent of a message, scores it against
a small knowledge base and assembles a templated answer.

Answers are deterministic: when a topic has several phrasings, the variant is
picked from a CRC32 of the normalised message.
"""

import re
import unicodedata
import zlib
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from bge_ai.llm.models import AIRequest, ProviderId, ProviderResult
from bge_ai.utils.logging import get_logger

logger = get_logger(__name__)

LOCAL_MODEL_NAME = "local-nlp"

BASE_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.95


@dataclass
class Topic:
    keywords: List[str]
    responses: List[str]
    category: str


@dataclass
class Intent:
    patterns: List[Pattern]
    confidence: float


@dataclass
class LocalAnswer:
    """What ``LocalResponder.process`` returns."""
    text: str
    confidence: float
    intent: str
    topic: Optional[str] = None
    modifiers: List[str] = field(default_factory=list)


KNOWLEDGE_BASE: Dict[str, Topic] = {
    "admision": Topic(
        keywords=["admision", "inscripcion", "ingresar", "inscribir", "requisitos", "registro"],
        responses=[
            'Para inscribirte al Bachillerato General Estatal "Héroes de la Patria", necesitas '
            "presentar tu certificado de secundaria, acta de nacimiento, CURP, y fotografías "
            "tamaño infantil.",
            "El proceso de admisión incluye una evaluación diagnóstica y entrega de documentos. "
            "Las inscripciones están abiertas durante febrero y marzo.",
            "Los requisitos de admisión incluyen haber concluido la educación secundaria y "
            "aprobar el examen de ingreso.",
        ],
        category="informacion_institucional",
    ),
    "plan_estudios": Topic(
        keywords=["plan", "estudios", "materias", "asignaturas", "curriculum", "semestres"],
        responses=[
            "Nuestro plan de estudios incluye materias básicas como Matemáticas, Español, "
            "Ciencias Naturales, Ciencias Sociales, y materias optativas especializadas.",
            "El bachillerato se cursa en 6 semestres (3 años) con un enfoque en formación "
            "integral y preparación universitaria.",
            "Ofrecemos especialidades en Ciencias Físico-Matemáticas, Químico-Biológicas, y "
            "Económico-Administrativas.",
        ],
        category="informacion_academica",
    ),
    "horarios": Topic(
        keywords=["horarios", "clases", "turnos", "horario", "hora", "tiempo"],
        responses=[
            "Tenemos turno matutino de 7:00 AM a 1:30 PM y turno vespertino de 2:00 PM a 8:30 PM.",
            "Las clases son de lunes a viernes. Los horarios se publican al inicio de cada semestre.",
            "Cada clase tiene duración de 50 minutos con 10 minutos de receso entre períodos.",
        ],
        category="logistica",
    ),
    "servicios": Topic(
        keywords=["servicios", "biblioteca", "laboratorio", "deportes", "cafeteria", "transporte"],
        responses=[
            "Contamos con biblioteca, laboratorios de ciencias, sala de cómputo, canchas "
            "deportivas, y cafetería escolar.",
            "Ofrecemos servicios de orientación vocacional, apoyo psicopedagógico, y actividades "
            "extracurriculares.",
            "Tenemos convenios de transporte escolar y becas académicas para estudiantes destacados.",
        ],
        category="servicios_escolares",
    ),
    "contacto": Topic(
        keywords=["contacto", "telefono", "direccion", "ubicacion", "email", "correo"],
        responses=[
            "Nos ubicamos en Puebla, México. Puedes contactarnos a través de nuestra página web "
            "o visitarnos directamente.",
            "Para más información, puedes comunicarte con nosotros o agendar una cita con el "
            "departamento de admisiones.",
            "Estamos disponibles de lunes a viernes en horario de oficina para resolver tus dudas.",
        ],
        category="contacto_institucional",
    ),
    "matematicas": Topic(
        keywords=["matematicas", "algebra", "geometria", "calculo", "trigonometria", "ecuaciones"],
        responses=[
            "En matemáticas trabajamos desde álgebra básica hasta cálculo diferencial, "
            "preparándote para estudios universitarios.",
            "Las matemáticas son fundamentales en nuestro plan de estudios, con enfoque en "
            "resolución de problemas y pensamiento lógico.",
            "Ofrecemos asesorías adicionales en matemáticas para estudiantes que necesiten "
            "refuerzo académico.",
        ],
        category="materia_academica",
    ),
    "ciencias": Topic(
        keywords=["ciencias", "fisica", "quimica", "biologia", "laboratorio", "experimentos"],
        responses=[
            "Nuestros laboratorios de ciencias están equipados para experimentos de física, "
            "química y biología.",
            "Las ciencias naturales incluyen prácticas de laboratorio y proyectos de "
            "investigación estudiantil.",
            "Fomentamos el método científico y la experimentación como base del aprendizaje "
            "en ciencias.",
        ],
        category="materia_academica",
    ),
    "orientacion_vocacional": Topic(
        keywords=["carrera", "universidad", "futuro", "orientacion", "vocacional", "profesion"],
        responses=[
            "Nuestro departamento de orientación vocacional te ayuda a descubrir tus intereses "
            "y aptitudes profesionales.",
            "Organizamos ferias universitarias y pláticas con profesionistas para orientar tu "
            "elección de carrera.",
            "Ofrecemos test vocacionales y asesoría personalizada para tu proyecto de vida "
            "universitario.",
        ],
        category="orientacion_estudiantil",
    ),
}

TEMPLATES: Dict[str, List[str]] = {
    "saludo": [
        '¡Hola! Soy el asistente virtual del Bachillerato General Estatal "Héroes de la Patria". '
        "¿En qué puedo ayudarte?",
        "¡Buenos días! Estoy aquí para ayudarte con información sobre nuestra institución. "
        "¿Qué te gustaría saber?",
        "¡Hola! ¿Tienes alguna pregunta sobre el bachillerato o nuestros servicios educativos?",
    ],
    "despedida": [
        "¡Gracias por contactarnos! Esperamos verte pronto en Héroes de la Patria. "
        "¡Que tengas un excelente día!",
        "Ha sido un placer ayudarte. Si tienes más preguntas, no dudes en contactarnos. ¡Hasta pronto!",
        "¡Excelente! Espero haber resuelto tus dudas. Te esperamos en Héroes de la Patria.",
    ],
    "no_entendido": [
        "Disculpa, no estoy seguro de entender tu pregunta. ¿Podrías reformularla?",
        "Lo siento, esa información no está en mi base de datos. ¿Te puedo ayudar con algo más "
        "sobre el bachillerato?",
        "No tengo información específica sobre eso, pero puedo ayudarte con admisiones, plan de "
        "estudios, horarios o servicios.",
    ],
    "ayuda_general": [
        "Puedo ayudarte con información sobre:\n• Proceso de admisión\n• Plan de estudios\n"
        "• Horarios y turnos\n• Servicios escolares\n• Orientación vocacional\n\n"
        "¿Qué te interesa saber?",
        "Estoy aquí para ayudarte con cualquier duda sobre Héroes de la Patria. Pregúntame sobre "
        "admisiones, materias, horarios o servicios.",
        "Mi especialidad es brindarte información educativa sobre nuestro bachillerato. "
        "¿En qué área específica te puedo ayudar?",
    ],
}

INTENTS: Dict[str, Intent] = {
    "saludo": Intent(
        patterns=[
            re.compile(r"^(hola|hi|hello|buenas|buenos|buen)\b"),
            re.compile(r"^(que tal|como estas|saludos)\b"),
        ],
        confidence=0.9,
    ),
    "despedida": Intent(
        patterns=[
            re.compile(r"^(adios|hasta luego|bye|nos vemos|gracias|chau)\b"),
            re.compile(r"^(me voy|ya me voy|hasta pronto)\b"),
        ],
        confidence=0.9,
    ),
    "pregunta_informacion": Intent(
        patterns=[
            re.compile(r"^(que|cual|cuales|como|cuando|donde|por que|cuanto|cuantos)\b"),
            re.compile(r"^(me puedes|puedes|podrias|necesito|quiero saber)\b"),
            re.compile(r"^(info|informacion|detalles|datos)\b"),
        ],
        confidence=0.8,
    ),
    "ayuda": Intent(
        patterns=[
            re.compile(r"^(ayuda|help|socorro|no entiendo)\b"),
            re.compile(r"^(que puedes hacer|como funciona)\b"),
        ],
        confidence=0.85,
    ),
}

DEFAULT_INTENT = ("pregunta_informacion", 0.5)

# keyword groups -> modifier name
CONTEXT_MODIFIERS: List[Tuple[Sequence[str], str]] = [
    (("urgente", "rapido", "inmediato", "ahora"), "urgencia"),
    (("proximamente", "siguiente", "futuro", "despues", "luego"), "planificacion"),
    (("gracias", "excelente", "perfecto", "genial", "increible"), "satisfaccion"),
    (("problema", "dificil", "no puedo", "complicado"), "preocupacion"),
]

MODIFIER_NOTES = {
    "urgencia": "\n\n⚡ *Para atención inmediata, puedes visitarnos directamente o llamar a nuestras oficinas.*",
    "planificacion": "\n\n📅 *Te recomendamos planificar con tiempo y revisar nuestras fechas importantes.*",
    "satisfaccion": "\n\n😊 *¡Me alegra poder ayudarte!*",
    "preocupacion": "\n\n💭 *No te preocupes, estamos aquí para apoyarte en todo el proceso.*",
}

CONTACT_NOTE = "\n\n📞 *¿Necesitas hablar directamente con nosotros? Agenda una cita o visítanos.*"


def normalize(text: str) -> str:
    """Lower-case, strip accents and leading Spanish punctuation."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    folded = "".join(c for c in decomposed if not unicodedata.combining(c))
    return folded.strip().lstrip("¿¡").strip()


@lru_cache(maxsize=512)
def keyword_pattern(keyword: str) -> Pattern:
    """Whole-word pattern for a keyword, so "hora" does not match "ahora"."""
    return re.compile(r"\b" + re.escape(normalize(keyword)) + r"\b")


def contains_keyword(normalized: str, keyword: str) -> bool:
    return keyword_pattern(keyword).search(normalized) is not None


class LocalResponder:
    """
    Pattern-matching responder used as the last-resort provider.

    Usage:
        responder = LocalResponder()
        answer = responder.process(request)
    """

    def __init__(
        self,
        knowledge_base: Optional[Dict[str, Topic]] = None,
        templates: Optional[Dict[str, List[str]]] = None,
    ):
        self.knowledge_base: Dict[str, Topic] = dict(knowledge_base or KNOWLEDGE_BASE)
        self.templates: Dict[str, List[str]] = dict(templates or TEMPLATES)

    def classify_intent(self, normalized: str) -> Tuple[str, float]:
        best_name, best_confidence = DEFAULT_INTENT
        for name, intent in INTENTS.items():
            if intent.confidence <= best_confidence:
                continue
            if any(p.search(normalized) for p in intent.patterns):
                best_name, best_confidence = name, intent.confidence
        return best_name, best_confidence

    def search_knowledge(self, normalized: str) -> Tuple[Optional[str], float]:
        """Topic with the largest fraction of its keywords present as whole words; one hit is enough."""
        best_topic: Optional[str] = None
        best_score = 0.0
        for name, topic in self.knowledge_base.items():
            if not topic.keywords:
                continue
            hits = sum(1 for keyword in topic.keywords if contains_keyword(normalized, keyword))
            score = hits / len(topic.keywords)
            if hits and score > best_score:
                best_topic, best_score = name, score
        return best_topic, best_score

    def context_modifiers(self, normalized: str) -> List[str]:
        return [
            modifier
            for keywords, modifier in CONTEXT_MODIFIERS
            if any(contains_keyword(normalized, keyword) for keyword in keywords)
        ]

    def _pick(self, options: List[str], seed: int) -> str:
        if not options:
            return "Información no disponible."
        return options[seed % len(options)]

    def process(self, request: AIRequest) -> LocalAnswer:
        """
        Answer a request from the local knowledge base.

        Args:
            request: The routed AI request (only ``message`` is used)

        Returns:
            LocalAnswer with the text and a confidence in [0, 0.95]
        """
        normalized = normalize(request.message)
        seed = zlib.crc32(normalized.encode("utf-8"))

        intent, intent_confidence = self.classify_intent(normalized)
        topic, score = self.search_knowledge(normalized)
        modifiers = self.context_modifiers(normalized)

        if intent in ("saludo", "despedida"):
            text = self._pick(self.templates.get(intent, []), seed)
        elif intent == "ayuda":
            text = self._pick(self.templates.get("ayuda_general", []), seed)
        elif topic is not None:
            text = self._pick(self.knowledge_base[topic].responses, seed)
            for modifier in ("urgencia", "planificacion"):
                if modifier in modifiers:
                    text += MODIFIER_NOTES[modifier]
        else:
            text = (
                self._pick(self.templates.get("no_entendido", []), seed)
                + "\n\n"
                + self._pick(self.templates.get("ayuda_general", []), seed)
            )

        for modifier in ("satisfaccion", "preocupacion"):
            if modifier in modifiers:
                text += MODIFIER_NOTES[modifier]

        if "contacto" in text or "más información" in text:
            text += CONTACT_NOTE

        confidence = BASE_CONFIDENCE + intent_confidence * 0.4 + score * 0.4
        confidence += min(len(modifiers) * 0.1, 0.2)
        confidence = min(confidence, MAX_CONFIDENCE)

        logger.debug(
            "llm.local.processed",
            extra={"intent": intent, "topic": topic, "confidence": round(confidence, 3)}
        )

        return LocalAnswer(
            text=text,
            confidence=confidence,
            intent=intent,
            topic=topic,
            modifiers=modifiers,
        )

    def add_knowledge(self, name: str, topic: Topic) -> None:
        self.knowledge_base[name] = topic
        logger.info("llm.local.knowledge_added", extra={"topic": name})

    def stats(self) -> Dict[str, int]:
        return {
            "knowledge_base_size": len(self.knowledge_base),
            "response_templates": len(self.templates),
            "intents": len(INTENTS),
            "context_patterns": len(CONTEXT_MODIFIERS),
        }


class LocalAdapter:
    """Provider adapter wrapping a LocalResponder; never touches the network."""

    provider_id = ProviderId.LOCAL
    configured = True

    def __init__(self, responder: Optional[LocalResponder] = None):
        self.responder = responder or LocalResponder()

    async def invoke(self, request: AIRequest) -> ProviderResult:
        answer = self.responder.process(request)
        return ProviderResult(
            text=answer.text,
            tokens_used=0,
            model_name=LOCAL_MODEL_NAME,
            confidence=answer.confidence,
        )

    async def probe(self) -> None:
        return None

    async def close(self) -> None:
        return None
