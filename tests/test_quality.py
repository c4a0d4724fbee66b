"""Generation mode selection tests."""

import pytest
from conftest import make_chunk, swaddling_chunks

from wikigen.config import Config
from wikigen.generation.quality import (
    GenerationMode,
    QualityThresholds,
    assess_quality,
    calculate_quality_score,
)


def test_no_chunks_is_knowledge_only():
    assessment = assess_quality([])

    assert assessment.mode == GenerationMode.KNOWLEDGE_ONLY
    assert assessment.quality_score == 0.0
    assert assessment.chunk_count == 0


def test_strong_multi_source_results_are_pure_retrieval():
    assessment = assess_quality(swaddling_chunks())

    assert assessment.mode == GenerationMode.PURE_RETRIEVAL
    assert assessment.unique_source_count == 3
    assert assessment.high_quality_count == 7


def test_single_source_is_hybrid():
    """Pure retrieval needs at least two distinct documents."""
    chunks = [make_chunk(str(i), document_id="only", similarity=0.8) for i in range(6)]

    assert assess_quality(chunks).mode == GenerationMode.HYBRID


def test_moderate_results_are_hybrid():
    chunks = [
        make_chunk("1", document_id="a", similarity=0.55),
        make_chunk("2", document_id="a", similarity=0.52),
        make_chunk("3", document_id="b", similarity=0.51),
    ]

    assert assess_quality(chunks).mode == GenerationMode.HYBRID


def test_many_weak_results_are_low_quality_hybrid():
    chunks = [make_chunk(str(i), document_id=f"d{i}", similarity=0.40) for i in range(4)]

    assessment = assess_quality(chunks)

    assert assessment.mode == GenerationMode.HYBRID
    assert assessment.high_quality_count == 0
    assert "Low-quality" in assessment.reason


def test_few_weak_results_are_knowledge_only():
    chunks = [make_chunk("1", similarity=0.40), make_chunk("2", similarity=0.38)]

    assert assess_quality(chunks).mode == GenerationMode.KNOWLEDGE_ONLY


def test_high_quality_threshold_is_strict():
    """A similarity of exactly 0.5 does not count as high quality."""
    chunks = [make_chunk(str(i), document_id=f"d{i}", similarity=0.5) for i in range(5)]

    assert assess_quality(chunks).high_quality_count == 0


def test_quality_score_formula():
    score = calculate_quality_score(avg_similarity=0.8, unique_sources=3, high_quality_count=4, count=5)

    assert score == pytest.approx(0.8 * 0.5 + 1.0 * 0.3 + 0.8 * 0.2)


def test_custom_thresholds():
    chunks = [make_chunk(str(i), document_id=f"d{i}", similarity=0.55) for i in range(3)]
    lenient = QualityThresholds(pure_min_avg_similarity=0.5, pure_min_high_quality=3)

    assert assess_quality(chunks, lenient).mode == GenerationMode.PURE_RETRIEVAL


def test_thresholds_from_settings():
    thresholds = QualityThresholds.from_settings(Config())

    assert thresholds == QualityThresholds()
