"""
Medical vocabulary for traumatology and orthopedics.

classify(word) looks a word up in the static dictionary first and then runs
the heuristic rules in order: acronym whitelist, anatomical regions, suffixes,
prefixes. Heuristic matches get a definition synthesized from the rule and a
generic reference.
"""
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
import unicodedata


@dataclass(frozen=True)
class TermInfo:
    term: str          # lowercased identifier
    definition: str
    reference: str
    source: str = "dictionary"  # dictionary | acronym | region | suffix | prefix


GENERIC_REFERENCE = "Término identificado automáticamente. Consulte bibliografía especializada de traumatología y ortopedia."

# term -> (definition, reference)
MEDICAL_TERMS = {
    "hallux valgus": (
        "Desviación del primer dedo del pie hacia los dedos menores con prominencia de la "
        "cabeza del primer metatarsiano en la articulación metatarsofalángica.",
        "Nix S, Smith M, Vicenzino B. Prevalence of hallux valgus in the general population: "
        "a systematic review and meta-analysis. J Foot Ankle Res. 2010.",
    ),
    "osteotomía": (
        "Corte quirúrgico de un hueso para corregir una deformidad, realinear un segmento o "
        "modificar la distribución de cargas.",
        "Barouk LS. Scarf osteotomy for hallux valgus correction. Foot Ankle Clin. 2000.",
    ),
    "artrodesis": (
        "Fusión quirúrgica de una articulación que suprime su movimiento para dar estabilidad "
        "y aliviar el dolor.",
        "Coughlin MJ, Mann RA. Surgery of the Foot and Ankle. 8th ed. Mosby; 2007.",
    ),
    "metatarsalgia": (
        "Dolor en la planta del antepié, a nivel de las cabezas de los metatarsianos, "
        "habitualmente por sobrecarga mecánica.",
        "Espinosa N, Brodsky JW, Maceira E. Metatarsalgia. J Am Acad Orthop Surg. 2010.",
    ),
    "fascitis plantar": (
        "Afección de la fascia plantar que produce dolor en el talón, sobre todo en los "
        "primeros pasos de la mañana.",
        "Buchbinder R. Clinical practice. Plantar fasciitis. N Engl J Med. 2004.",
    ),
    "síndrome del túnel carpiano": (
        "Compresión del nervio mediano en el túnel carpiano que causa parestesias y dolor "
        "en la mano.",
        "Atroshi I, et al. Prevalence of carpal tunnel syndrome in a general population. JAMA. 1999.",
    ),
    "luxación": (
        "Pérdida completa y mantenida del contacto entre las superficies de una articulación; "
        "requiere reducción.",
        "Court-Brown CM, Heckman JD, McQueen MM, et al. Rockwood and Green's Fractures in Adults. 8th ed.",
    ),
    "fractura": (
        "Pérdida de continuidad de un hueso por traumatismo, sobrecarga o enfermedad, "
        "clasificada por localización, trazo y desplazamiento.",
        "Buckley RE, Moran CG, Apivatthakakul T. AO Principles of Fracture Management. 3rd ed.",
    ),
    "artrosis": (
        "Enfermedad articular degenerativa con pérdida de cartílago, osteofitos y cambios "
        "en el hueso subcondral.",
        "Hunter DJ, Bierma-Zeinstra S. Osteoarthritis. Lancet. 2019.",
    ),
    "tendinopatía": (
        "Término general para el dolor y la alteración estructural de un tendón, desde la "
        "tendinosis hasta la rotura parcial.",
        "Cook JL, Purdam CR. Is tendon pathology a continuum? Br J Sports Med. 2009.",
    ),
    "menisco": (
        "Fibrocartílago en forma de media luna entre fémur y tibia que amortigua y estabiliza "
        "la rodilla.",
        "Fox AJ, Bedi A, Rodeo SA. The basic science of human knee menisci. Sports Health. 2012.",
    ),
    "ligamento cruzado anterior": (
        "Ligamento intraarticular de la rodilla que limita el desplazamiento anterior de la "
        "tibia y controla la rotación.",
        "Boden BP, et al. Mechanisms of anterior cruciate ligament injury. Orthopedics. 2000.",
    ),
    "lca": (
        "Siglas de ligamento cruzado anterior, estabilizador principal de la traslación "
        "anterior de la tibia.",
        "Boden BP, et al. Mechanisms of anterior cruciate ligament injury. Orthopedics. 2000.",
    ),
    "rmn": (
        "Resonancia magnética nuclear: imagen por campos magnéticos, sin radiación ionizante, "
        "de elección para partes blandas.",
        "Helms CA, Major NM, Anderson MW, et al. Musculoskeletal MRI. 3rd ed. Elsevier; 2020.",
    ),
    "tac": (
        "Tomografía axial computarizada: cortes transversales obtenidos con rayos X, útil en "
        "fracturas complejas.",
        "Novelline RA. Squire's Fundamentals of Radiology. 6th ed. Harvard University Press; 2004.",
    ),
    "esguince": (
        "Lesión de un ligamento por distensión o rotura parcial tras un movimiento forzado "
        "de la articulación.",
        "Doherty C, et al. The incidence and prevalence of ankle sprain injury. Sports Med. 2014.",
    ),
    "epicondilitis": (
        "Tendinopatía de la inserción de los extensores del antebrazo en el epicóndilo lateral "
        "del húmero (codo de tenista).",
        "Shiri R, et al. Prevalence and determinants of lateral and medial epicondylitis. Am J Epidemiol. 2006.",
    ),
    "escoliosis": (
        "Curvatura lateral de la columna vertebral mayor de 10 grados, con componente rotacional.",
        "Weinstein SL, et al. Adolescent idiopathic scoliosis. Lancet. 2008.",
    ),
}

# Uppercase only; matched case-sensitively
ACRONYMS = {
    "AINE": "Antiinflamatorio no esteroideo",
    "EMG": "Electromiografía",
    "LCP": "Ligamento cruzado posterior",
    "LLI": "Ligamento lateral interno",
    "PRP": "Plasma rico en plaquetas",
    "TENS": "Estimulación nerviosa eléctrica transcutánea",
    "ROM": "Rango de movimiento articular",
    "DMO": "Densidad mineral ósea",
}

# stem -> region name
ANATOMICAL_REGIONS = [
    ("cervic", "la región cervical"),
    ("lumb", "la región lumbar"),
    ("dors", "la región dorsal"),
    ("sacro", "el sacro"),
    ("femor", "el fémur"),
    ("tibi", "la tibia"),
    ("perone", "el peroné"),
    ("humer", "el húmero"),
    ("clavic", "la clavícula"),
    ("escapul", "la escápula"),
    ("rotul", "la rótula"),
    ("calcane", "el calcáneo"),
    ("vertebr", "las vértebras"),
]

# suffix -> definition template ({stem})
SUFFIXES = [
    ("ectomia", "Extirpación quirúrgica relacionada con {stem}."),
    ("otomia", "Corte o incisión quirúrgica de {stem}."),
    ("plastia", "Reconstrucción quirúrgica de {stem}."),
    ("scopia", "Exploración visual de {stem} con un instrumento óptico."),
    ("algia", "Dolor localizado en {stem}."),
    ("patia", "Enfermedad o afección de {stem}."),
    ("itis", "Inflamación de {stem}."),
    ("osis", "Proceso degenerativo o patológico de {stem}."),
]

PREFIXES = [
    ("artro", "las articulaciones"),
    ("osteo", "el hueso"),
    ("condro", "el cartílago"),
    ("neuro", "el sistema nervioso"),
    ("mielo", "la médula"),
    ("angio", "los vasos sanguíneos"),
    ("fibro", "el tejido fibroso"),
]

MIN_EXTRA_CHARS = 2


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return unicodedata.normalize("NFC", "".join(c for c in decomposed if unicodedata.category(c) != "Mn"))


def lookup(term: str) -> Optional[TermInfo]:
    key = term.lower().strip()
    entry = MEDICAL_TERMS.get(key)
    if entry is None:
        return None
    definition, reference = entry
    return TermInfo(term=key, definition=definition, reference=reference, source="dictionary")


def _acronym(word: str) -> Optional[TermInfo]:
    if word in ACRONYMS:
        return TermInfo(
            term=word.lower(),
            definition=f"Sigla de {ACRONYMS[word].lower()}.",
            reference=GENERIC_REFERENCE,
            source="acronym",
        )
    return None


def _region(word: str) -> Optional[TermInfo]:
    plain = strip_accents(word.lower())
    for stem, region in ANATOMICAL_REGIONS:
        if plain.startswith(stem) and len(plain) >= len(stem) + MIN_EXTRA_CHARS:
            return TermInfo(
                term=word.lower(),
                definition=f"Término anatómico referido a {region}.",
                reference=GENERIC_REFERENCE,
                source="region",
            )
    return None


def _suffix(word: str) -> Optional[TermInfo]:
    lower = word.lower()
    plain = strip_accents(lower)
    for suffix, template in SUFFIXES:
        if plain.endswith(suffix) and len(plain) >= len(suffix) + MIN_EXTRA_CHARS:
            stem = lower[: len(lower) - len(suffix)]
            return TermInfo(
                term=lower,
                definition=template.format(stem=stem),
                reference=GENERIC_REFERENCE,
                source="suffix",
            )
    return None


def _prefix(word: str) -> Optional[TermInfo]:
    plain = strip_accents(word.lower())
    for prefix, meaning in PREFIXES:
        if plain.startswith(prefix) and len(plain) >= len(prefix) + MIN_EXTRA_CHARS:
            return TermInfo(
                term=word.lower(),
                definition=f"Término médico relacionado con {meaning}.",
                reference=GENERIC_REFERENCE,
                source="prefix",
            )
    return None


RULES: List[Tuple[str, Callable[[str], Optional[TermInfo]]]] = [
    ("acronym", _acronym),
    ("region", _region),
    ("suffix", _suffix),
    ("prefix", _prefix),
]


def classify(word: str) -> Optional[TermInfo]:
    """Dictionary entry for word, else the first heuristic rule that matches, else None."""
    if not word or not word.strip():
        return None
    info = lookup(word)
    if info is not None:
        return info
    for _, rule in RULES:
        info = rule(word.strip())
        if info is not None:
            return info
    return None
