"""
Prompt Profiles
===============

System prompts and generation settings for each kind of school user, plus the
fixed prompts behind the chat and analysis endpoints.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping

from bge_ai.llm.models import AIRequest


@dataclass(frozen=True)
class PromptProfile:
    """Generation settings for one user role."""
    system_prompt: str
    max_tokens: int
    temperature: float


DEFAULT_ROLE = "student"

ROLE_PROFILES: Dict[str, PromptProfile] = {
    "student": PromptProfile(
        system_prompt=(
            "Eres un tutor educativo experto para estudiantes de bachillerato mexicano. "
            "Responde de manera clara, didáctica y motivadora. Usa ejemplos relevantes para México. "
            "Adapta tu lenguaje al nivel de bachillerato y mantén un tono amigable pero profesional."
        ),
        max_tokens=800,
        temperature=0.7,
    ),
    "teacher": PromptProfile(
        system_prompt=(
            "Eres un asistente pedagógico especializado para docentes de bachillerato. "
            "Proporciona estrategias didácticas, recursos educativos y orientación pedagógica. "
            "Considera el contexto del sistema educativo mexicano y las mejores prácticas docentes."
        ),
        max_tokens=1200,
        temperature=0.6,
    ),
    "parent": PromptProfile(
        system_prompt=(
            "Eres un consejero familiar especializado en educación de adolescentes. "
            "Responde con empatía y proporciona consejos prácticos para padres de familia. "
            "Enfócate en la comunicación efectiva y el apoyo académico desde casa."
        ),
        max_tokens=600,
        temperature=0.8,
    ),
    "admin": PromptProfile(
        system_prompt=(
            "Eres un consultor educativo especializado en gestión institucional. "
            "Proporciona análisis estratégicos, métricas educativas y recomendaciones administrativas. "
            "Mantén un enfoque profesional basado en datos y mejores prácticas educativas."
        ),
        max_tokens=1500,
        temperature=0.5,
    ),
}

CHAT_SYSTEM_PROMPT = (
    "Eres un asistente educativo especializado. Mantén una conversación natural y educativa. "
    "Este es un chat conversacional, así que mantén continuidad con mensajes anteriores "
    "cuando sea relevante."
)

ANALYSIS_PROMPTS: Dict[str, str] = {
    "general": (
        "Analiza el siguiente contenido educativo de manera general. Proporciona insights "
        "sobre su calidad, claridad y valor educativo."
    ),
    "pedagogical": (
        "Como experto pedagógico, analiza este contenido educativo. Evalúa su efectividad "
        "didáctica, nivel de dificultad apropiado, y sugiere mejoras metodológicas."
    ),
    "assessment": (
        "Analiza este contenido desde la perspectiva de evaluación educativa. Identifica "
        "objetivos de aprendizaje, criterios de evaluación y sugiere métodos de evaluación."
    ),
    "accessibility": (
        "Evalúa la accesibilidad educativa de este contenido. Considera diferentes estilos "
        "de aprendizaje, necesidades especiales y adaptaciones posibles."
    ),
    "curriculum": (
        "Analiza cómo este contenido se alinea con el currículo de bachillerato mexicano. "
        "Evalúa su relevancia curricular y conexiones interdisciplinarias."
    ),
}

# Conversation turns folded into the context of a chat request
CHAT_HISTORY_TURNS = 5


def get_profile(role: str) -> PromptProfile:
    """Profile for a role; unknown roles get the student profile."""
    return ROLE_PROFILES.get((role or "").lower(), ROLE_PROFILES[DEFAULT_ROLE])


def system_prompt_for(request: AIRequest) -> str:
    """The override when given, else the role prompt."""
    if request.system_prompt_override:
        return request.system_prompt_override
    return get_profile(request.user_profile.role).system_prompt


def user_context_note(request: AIRequest) -> str:
    """Describe the caller for the remote model."""
    profile = request.user_profile
    return (
        f"Contexto del usuario: {profile.display_name} ({profile.role}). "
        f"Nivel académico: {profile.level}. "
        f"Contexto adicional: {request.context or 'Ninguno'}"
    )


def get_analysis_prompt(analysis_type: str) -> str:
    return ANALYSIS_PROMPTS.get(analysis_type, ANALYSIS_PROMPTS["general"])


def build_chat_context(history: List[Mapping[str, str]]) -> str:
    """Fold the last few conversation turns into a plain-text context."""
    recent = history[-CHAT_HISTORY_TURNS:]
    return "\n".join(
        f"{turn.get('role', 'user')}: {turn.get('content', '')}" for turn in recent
    )


def build_analysis_message(analysis_type: str, content: str) -> str:
    return f"{get_analysis_prompt(analysis_type)}\n\nContenido a analizar:\n{content}"


def analysis_context(subject=None, grade=None) -> str:
    return f"Materia: {subject or 'No especificada'}, Grado: {grade or 'No especificado'}"
