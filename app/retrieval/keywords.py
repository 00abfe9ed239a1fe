"""
Keyword extraction for bibliographic search.

The model is asked for a short comma-separated list of medical terms. When it
fails, or its reply parses to nothing, a deterministic dictionary scan is used
instead so the search stage never receives an empty keyword list.
"""
from typing import Iterable, List, Optional
import re
import unicodedata

from app.logging_config import get_logger
from app.models import StageResult

logger = get_logger(__name__)

KEYWORD_PROMPT = (
    "Extract 3-5 key medical terms or keywords from the following medical text. "
    "Return only the keywords separated by commas, nothing else. Focus on medical "
    "conditions, procedures, anatomy, and treatments."
)

MAX_KEYWORDS = 5
MAX_KEYWORD_LENGTH = 30
FALLBACK_MATCH_LIMIT = 3
FALLBACK_FILLERS = ("medical", "treatment")

# Scanned in order; multi-word phrases first so they win over their parts
FALLBACK_TERMS = [
    "hallux valgus", "distal radius", "anterior cruciate ligament", "carpal tunnel",
    "plantar fasciitis", "rotator cuff",
    "fracture", "fractura", "dislocation", "luxación", "sprain", "esguince",
    "osteoarthritis", "artrosis", "tendinopathy", "tendinopatía", "meniscus", "menisco",
    "ligament", "ligamento", "tendon", "tendón", "osteotomy", "osteotomía",
    "arthrodesis", "artrodesis", "arthroplasty", "artroplastia", "arthroscopy",
    "bunion", "metatarsalgia", "ankle", "tobillo", "knee", "rodilla", "hip", "cadera",
    "shoulder", "hombro", "elbow", "codo", "wrist", "muñeca", "spine", "columna",
    "radius", "femur", "tibia", "fibula", "pain", "dolor", "injury", "lesión",
    "surgery", "cirugía", "rehabilitation", "rehabilitación", "orthopedic", "trauma",
]

_BULLET_RE = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")
_QUOTES = "\"'`“”‘’"


def parse_keywords(raw: str) -> List[str]:
    """Split a model reply into clean keywords (may be empty)."""
    keywords: List[str] = []
    seen = set()
    for part in re.split(r"[,\n]", raw or ""):
        term = _BULLET_RE.sub("", part).strip().strip(_QUOTES).strip().rstrip(".")
        if not term or len(term) > MAX_KEYWORD_LENGTH or ":" in term:
            continue
        key = term.lower()
        if key in seen:
            continue
        seen.add(key)
        keywords.append(term)
        if len(keywords) >= MAX_KEYWORDS:
            break
    return keywords


def fallback_keywords(text: str) -> List[str]:
    """
    Deterministic keywords from a fixed trauma/orthopedic vocabulary.

    Returns up to 3 vocabulary hits followed by the generic fillers, so the
    result is never empty.
    """
    lower = (text or "").lower()
    found: List[str] = []
    for term in FALLBACK_TERMS:
        if len(found) >= FALLBACK_MATCH_LIMIT:
            break
        if re.search(rf"(?<!\w){re.escape(term)}(?!\w)", lower):
            # Skip single words already covered by a matched phrase
            if any(term in phrase.split() for phrase in found):
                continue
            found.append(term)

    for filler in FALLBACK_FILLERS:
        if filler not in found:
            found.append(filler)
    return found


class KeywordExtractor:
    """LLM-backed keyword extraction with the dictionary fallback."""

    def __init__(self, llm, model: Optional[str] = None):
        self.llm = llm
        self.model = model

    def extract_result(self, english_text: str) -> StageResult[List[str]]:
        messages = [
            {"role": "system", "content": KEYWORD_PROMPT},
            {"role": "user", "content": english_text},
        ]
        try:
            raw = self.llm.chat(messages, model=self.model, temperature=0.1, max_tokens=100)
        except Exception as e:
            logger.warning(f"Keyword extraction failed, using dictionary fallback: {e}")
            return StageResult.degraded(fallback_keywords(english_text), str(e))

        keywords = parse_keywords(raw)
        if not keywords:
            logger.warning(f"No usable keywords in model reply {raw!r}, using dictionary fallback")
            return StageResult.degraded(fallback_keywords(english_text), "empty keyword list")

        logger.info(f"Extracted keywords: {keywords}")
        return StageResult.ok(keywords)

    def extract_keywords(self, english_text: str) -> List[str]:
        return self.extract_result(english_text).value


# Keyword scoring for the second-phase search

SPANISH_TO_ENGLISH = {
    "tobillo": "ankle",
    "rodilla": "knee",
    "cadera": "hip",
    "hombro": "shoulder",
    "codo": "elbow",
    "muneca": "wrist",
    "columna": "spine",
    "pie": "foot",
    "mano": "hand",
    "fractura": "fracture",
    "rehabilitacion": "rehabilitation",
    "cirugia": "surgery",
    "tratamiento": "treatment",
}

SPECIFIC_ANATOMY = [
    "ankle", "tobillo", "knee", "rodilla", "hip", "cadera", "shoulder", "hombro",
    "elbow", "codo", "wrist", "muñeca", "spine", "columna", "foot", "pie", "hand", "mano",
]
PATHOLOGIES = [
    "exostosis", "exostoses", "neuroma", "bursitis", "hallux", "metatarsalgia", "fasciitis",
    "morton", "capsulitis", "tendinitis", "tendinosis", "tendinopatía", "bunion", "juanete",
    "hammertoe", "clawtoe", "mallettoe", "plantar", "fascitis", "sesamoiditis",
    "osteomielitis", "osteomyelitis", "artritis", "arthritis", "sinovitis", "synovitis",
    "condromalacia", "chondromalacia", "tumor", "quiste", "cyst", "lesion", "lesión",
    "fractura", "fracture", "deformidad", "deformity", "espolón", "spur", "calcáneo", "calcaneal",
]
GENERAL_ANATOMY = ["interdigital", "plantar", "dorsal", "medial", "lateral", "proximal", "distal", "bone", "joint"]
PROCEDURES = ["osteotomy", "arthrodesis", "arthroplasty", "resection", "excision", "reconstruction"]
TREATMENTS = ["rehabilitation", "rehabilitación", "therapy", "terapia"]
TECHNIQUES = ["minimally", "invasive", "percutaneous", "arthroscopic", "endoscopic"]
VERY_GENERIC = ["tratamiento", "treatment", "cirugía", "surgery", "manejo", "management"]


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def _normalize(keyword: str) -> str:
    """Lowercase, accent-free, letters and spaces only; Spanish terms mapped to English."""
    normalized = re.sub(r"[^a-z ]", "", _strip_accents(keyword.lower()))
    return SPANISH_TO_ENGLISH.get(normalized, normalized)


def score_keyword(keyword: str) -> int:
    """Heuristic specificity score; higher is a better single search term."""
    lower = keyword.lower()
    normalized = _normalize(keyword)
    score = 0

    if " " in keyword:
        score += 25

    is_specific_anatomy = any(
        _strip_accents(anat) in normalized or anat in lower for anat in SPECIFIC_ANATOMY
    )
    if is_specific_anatomy:
        score += 20

    letters = normalized.replace(" ", "")
    is_pathology = any(
        re.sub(r"[^a-z]", "", _strip_accents(path)) in letters or path in lower for path in PATHOLOGIES
    )
    if is_pathology and not is_specific_anatomy:
        score += 12

    if any(anat in lower for anat in GENERAL_ANATOMY) and not is_specific_anatomy:
        score += 8

    if any(proc in lower for proc in PROCEDURES):
        score += 10

    if any(treat in lower for treat in TREATMENTS) and " " not in keyword:
        score += 7

    if any(tech in lower for tech in TECHNIQUES):
        score += 6

    if lower in VERY_GENERIC:
        score -= 8

    if len(keyword) > 12:
        score += 4
    elif len(keyword) > 8:
        score += 2

    if lower.endswith("osis") or lower.endswith("ósis"):
        score += 5
    elif any(lower.endswith(ending) for ending in ("itis", "oma", "ia", "us", "um")):
        score += 3

    return score


def normalize_for_pubmed(keyword: str) -> str:
    """Map a handful of Spanish terms to their English search form."""
    mapped = {
        "tratamiento": "treatment",
        "cirugia": "surgery",
    }
    return mapped.get(_strip_accents(keyword.lower()), keyword)


def select_most_specific_keyword(keywords: Iterable[str]) -> Optional[str]:
    """Pick the highest-scoring keyword (first wins on ties), normalized for search."""
    keywords = [k for k in keywords if k]
    if not keywords:
        return None

    best = keywords[0]
    best_score = score_keyword(best)
    for keyword in keywords[1:]:
        score = score_keyword(keyword)
        if score > best_score:
            best, best_score = keyword, score

    logger.debug(f"Selected keyword for OR search: {best} (score {best_score})")
    return normalize_for_pubmed(best)
