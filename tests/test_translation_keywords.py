"""
Tests for translation, keyword extraction and keyword selection.
"""
from conftest import FakeLLM

from app.models import StageResult
from app.retrieval.keywords import (
    KeywordExtractor,
    fallback_keywords,
    normalize_for_pubmed,
    parse_keywords,
    score_keyword,
    select_most_specific_keyword,
)
from app.retrieval.translation import Translator


# Translation

def test_translate_ok():
    llm = FakeLLM({"translation": "  treatment of hallux valgus  "})

    result = Translator(llm).translate_result("tratamiento del hallux valgus")

    assert result.status == StageResult.OK
    assert result.value == "treatment of hallux valgus"
    assert llm.calls[0]["messages"][1]["content"] == "tratamiento del hallux valgus"


def test_translate_failure_returns_original():
    llm = FakeLLM(fail={"translation"})

    result = Translator(llm).translate_result("dolor de rodilla")

    assert result.is_degraded
    assert result.value == "dolor de rodilla"


def test_translate_empty_reply_returns_original():
    llm = FakeLLM({"translation": "   "})

    assert Translator(llm).translate("dolor de rodilla") == "dolor de rodilla"


def test_translate_empty_input_skips_model():
    llm = FakeLLM()

    result = Translator(llm).translate_result("")

    assert result.is_ok
    assert llm.calls == []


# Keyword parsing

def test_parse_keywords_cleans_and_caps():
    raw = '1. "hallux valgus", - osteotomy, Osteotomy, bunion.\nscarf, chevron, lapidus'

    assert parse_keywords(raw) == ["hallux valgus", "osteotomy", "bunion", "scarf", "chevron"]


def test_parse_keywords_drops_preambles_and_long_items():
    raw = "Here are the keywords: knee, a very long explanation that is not a keyword at all, meniscus"

    assert parse_keywords(raw) == ["knee", "meniscus"]


def test_parse_keywords_empty():
    assert parse_keywords("") == []
    assert parse_keywords(None) == []


# Fallback vocabulary

def test_fallback_prefers_phrases_over_their_words():
    assert fallback_keywords("management of distal radius fracture") == [
        "distal radius", "fracture", "medical", "treatment",
    ]


def test_fallback_caps_vocabulary_hits():
    keywords = fallback_keywords("ankle fracture with ligament injury and pain after surgery")

    assert keywords[-2:] == ["medical", "treatment"]
    assert len(keywords) == 5


def test_fallback_never_empty():
    assert fallback_keywords("unrelated question") == ["medical", "treatment"]
    assert fallback_keywords("") == ["medical", "treatment"]


def test_fallback_does_not_duplicate_fillers():
    assert fallback_keywords("medical treatment") == ["medical", "treatment"]


# Extractor

def test_extractor_uses_model_reply():
    llm = FakeLLM({"keywords": "distal radius fracture, management"})

    result = KeywordExtractor(llm, model="aux").extract_result("management of distal radius fracture")

    assert result.is_ok
    assert result.value == ["distal radius fracture", "management"]
    assert llm.calls[0]["model"] == "aux"


def test_extractor_falls_back_on_failure():
    llm = FakeLLM(fail={"keywords"})

    result = KeywordExtractor(llm).extract_result("knee pain")

    assert result.is_degraded
    assert result.value == ["knee", "pain", "medical", "treatment"]


def test_extractor_falls_back_on_unusable_reply():
    llm = FakeLLM({"keywords": "Keywords: none"})

    assert KeywordExtractor(llm).extract_keywords("hip") == ["hip", "medical", "treatment"]


# Keyword selection

def test_phrase_with_pathology_beats_generic_terms():
    assert select_most_specific_keyword(["treatment", "hallux valgus", "bunion"]) == "hallux valgus"


def test_generic_terms_score_low():
    assert score_keyword("treatment") < score_keyword("bunion")
    assert score_keyword("management") < 0


def test_tie_keeps_first_keyword():
    assert score_keyword("knee") == score_keyword("hip")
    assert select_most_specific_keyword(["knee", "hip"]) == "knee"


def test_selection_normalizes_spanish_generic_terms():
    assert normalize_for_pubmed("Cirugía") == "surgery"
    assert select_most_specific_keyword(["tratamiento"]) == "treatment"


def test_selection_of_nothing():
    assert select_most_specific_keyword([]) is None
    assert select_most_specific_keyword(["", None]) is None
