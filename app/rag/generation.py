"""
LLM-based generation for the Salustia assistant.

Builds the chat messages for a clinical question (with optional PubMed
context) and runs the primary answer, the structured summary and the
follow-up suggestions through an LLMClient.
"""
from typing import List, Optional, Sequence
import re
import time

from app.errors import UpstreamUnavailable
from app.logging_config import get_logger
from app.models import BibliographicArticle

logger = get_logger(__name__)

SYSTEM_PROMPT = """
<Role Context>
Eres Salustia, un asistente médico especializado exclusivamente en traumatología y ortopedia.
Respondes a profesionales sanitarios en español, con rigor clínico y de forma concisa.
</Role Context>

<Constraints>
Responde solo a preguntas de traumatología y ortopedia.
Si la pregunta está fuera de ese ámbito, indícalo con amabilidad y no respondas al contenido.
Cuando se incluya <Literatura>, apóyate en ella y cita los artículos por su título exacto entre comillas seguido del año, por ejemplo: "Título del artículo" (2022).
Si citas artículos, termina con una sección que empiece por "Referencias:".
No inventes artículos que no aparezcan en <Literatura>.
Tu respuesta no sustituye la valoración clínica presencial.
</Constraints>
"""

SUMMARY_SYSTEM_PROMPT = """Eres un especialista en resumir consultas médicas de traumatología y ortopedia. Crea un resumen estructurado y conciso con:

1. DIAGNÓSTICO PRINCIPAL: el diagnóstico más probable mencionado
2. DIAGNÓSTICOS DIFERENCIALES: otras posibilidades consideradas
3. EVIDENCIAS CLAVE: hallazgos clínicos, estudios o signos relevantes
4. TRATAMIENTO SUGERIDO: opciones terapéuticas recomendadas
5. CONSIDERACIONES ESPECIALES: factores de riesgo, complicaciones o seguimiento

Usa un formato profesional. Omite las secciones que no apliquen.

Estructura:
**DIAGNÓSTICO PRINCIPAL:** [diagnóstico]
**DIAGNÓSTICOS DIFERENCIALES:** [lista]
**EVIDENCIAS CLAVE:** [hallazgos]
**TRATAMIENTO:** [opciones]
**CONSIDERACIONES:** [factores]"""

SUMMARY_FALLBACK = "No se pudo generar resumen automático."
MAX_SUGGESTIONS = 3


def build_messages(
    user_message: str,
    articles: Sequence[BibliographicArticle] = (),
    conversation_history: Optional[List[dict]] = None,
) -> List[dict]:
    """System instruction, prior turns, then the question with its literature block."""
    messages = [{'role': 'system', 'content': SYSTEM_PROMPT}]

    if conversation_history:
        for msg in conversation_history:
            messages.append({'role': msg['role'], 'content': msg['content']})

    if articles:
        current_message = f"<Literatura>\nA continuación, {len(articles)} artículos recientes de PubMed relacionados con la consulta.\n"
        for article in articles:
            year = article.publication_year or "s.f."
            current_message += (
                f"- \"{article.title}\" ({year}) | {article.authors} | {article.journal} | {article.abstract}\n"
            )
        current_message += f"</Literatura>\nConsulta: {user_message}"
    else:
        current_message = user_message

    messages.append({'role': 'user', 'content': current_message})
    return messages


def generate_response(
    llm,
    user_message: str,
    articles: Sequence[BibliographicArticle] = (),
    conversation_history: Optional[List[dict]] = None,
) -> str:
    """Primary answer. Raises UpstreamUnavailable; callers treat it as fatal."""
    messages = build_messages(user_message, articles, conversation_history)
    logger.debug(f"Messages:\n{messages}\n")

    llm_start = time.time()
    try:
        response = llm.chat(messages, temperature=0.2, max_tokens=512)
    except UpstreamUnavailable:
        logger.error("Error generating response", exc_info=True)
        raise
    llm_time = (time.time() - llm_start) * 1000
    logger.info(f"LLM generation time: {llm_time:.0f}ms")
    return response


def generate_summary(llm, prompt: str, response: str, model: Optional[str] = None) -> str:
    """Structured Spanish clinical summary of one exchange. Raises UpstreamUnavailable."""
    summary_prompt = (
        f"CONSULTA ORIGINAL: {prompt}\n\nRESPUESTA MÉDICA: {response}\n\n"
        "Genera un resumen estructurado de esta consulta médica:"
    )
    messages = [
        {'role': 'system', 'content': SUMMARY_SYSTEM_PROMPT},
        {'role': 'user', 'content': summary_prompt},
    ]
    summary = llm.chat(messages, model=model, temperature=0.1, max_tokens=400)
    return summary or SUMMARY_FALLBACK


def parse_suggestions(raw: str) -> List[str]:
    """One suggestion per non-empty line, leading numbering removed, at most three."""
    lines = [line.strip() for line in (raw or "").strip().split("\n") if line.strip()]
    return [re.sub(r"^\d+\.\s*", "", line).strip() for line in lines[:MAX_SUGGESTIONS]]


def generate_follow_up_suggestions(llm, response: str, model: Optional[str] = None) -> List[str]:
    """Three short follow-up questions about the answer. Raises UpstreamUnavailable."""
    prompt = (
        f"Basándote en esta respuesta: \"{response[:200]}...\" sugiere 3 preguntas de "
        "seguimiento cortas sobre traumatología. Una por línea, sin números."
    )
    raw = llm.chat([{'role': 'user', 'content': prompt}], model=model, temperature=0.3, max_tokens=150)
    return parse_suggestions(raw)
