"""Tests for model output schemas and their default-filling rules."""

import pytest
from pydantic import ValidationError

from sentencify.llm.validators import (
    validate_analysis,
    validate_bulk_extraction,
    validate_double_check,
    validate_topic_extraction,
)
from sentencify.schemas.llm_outputs import (
    AnalysisOutput,
    BulkExtractionOutput,
    DoubleCheckOutput,
    FactsComparisonOutput,
    TopicExtractionOutput,
)


class TestTopicExtraction:

    def test_defaults(self):
        out = TopicExtractionOutput.model_validate({})
        assert out.topics == []
        assert out.partes.reclamante == ""
        assert out.partes.reclamadas == []

    def test_null_strings_become_empty(self):
        out = TopicExtractionOutput.model_validate(
            {"partes": {"reclamante": None}, "topics": [{"title": None, "category": "MÉRITO"}]}
        )
        assert out.partes.reclamante == ""
        assert out.topics[0].title == ""

    def test_unknown_fields_kept(self):
        out = TopicExtractionOutput.model_validate({"topics": [], "observacoes": "x"})
        assert out.model_extra == {"observacoes": "x"}

    def test_rejects_wrong_structure(self):
        with pytest.raises(ValidationError):
            TopicExtractionOutput.model_validate({"topics": "HORAS EXTRAS"})

    def test_semantic_requires_topics(self):
        ok, error = validate_topic_extraction(TopicExtractionOutput())
        assert not ok
        assert "no topics" in error


class TestAnalysis:

    def test_coercions(self):
        out = AnalysisOutput.model_validate({
            "identificacao": {"numeroProcesso": "0001234-56.2024.5.02.0001"},
            "pedidos": [
                {"numero": "1", "tema": "Horas extras", "valor": 15000.5},
                {"numero": 2, "tema": None, "valor": "R$ 3.000,00", "fatosReclamante": None},
            ],
            "alertas": [{"tipo": "prazo", "severidade": None}],
        })
        first, second = out.pedidos
        assert first.numero == 1
        assert first.valor == "15000.5"
        assert first.controversia is True
        assert second.tema == ""
        assert second.fatos_reclamante == ""
        assert second.valor == "R$ 3.000,00"
        assert out.alertas[0].severidade == "media"
        assert out.identificacao.numero_processo.startswith("0001234")
        assert out.preliminares == []

    def test_invalid_severity(self):
        with pytest.raises(ValidationError):
            AnalysisOutput.model_validate({"alertas": [{"severidade": "urgente"}]})

    def test_semantic_requires_claims(self):
        ok, _ = validate_analysis(AnalysisOutput())
        assert not ok


class TestDoubleCheck:

    def test_defaults(self):
        out = DoubleCheckOutput.model_validate({})
        assert out.corrections == []
        assert out.confidence == 0.85
        assert out.summary == ""

    def test_verified_field_retained(self):
        out = DoubleCheckOutput.model_validate(
            {"corrections": [], "verifiedDispositivo": "JULGO PROCEDENTE"}
        )
        assert out.extra_field("verifiedDispositivo") == "JULGO PROCEDENTE"

    def test_correction_types(self):
        out = DoubleCheckOutput.model_validate({"corrections": [
            {"type": "merge", "description": "Unir tópicos", "original": None},
            {"type": "add_row", "description": "Linha nova"},
        ]})
        assert [c.type for c in out.corrections] == ["merge", "add_row"]
        assert out.corrections[0].original is None

    @pytest.mark.parametrize("confidence", [-0.1, 1.5])
    def test_confidence_bounds(self, confidence):
        with pytest.raises(ValidationError):
            DoubleCheckOutput.model_validate({"confidence": confidence})

    def test_semantic_requires_description(self):
        out = DoubleCheckOutput.model_validate({"corrections": [{"type": "remove"}]})
        ok, error = validate_double_check(out)
        assert not ok
        assert "Correction 0" in error


class TestFactsComparison:

    def test_row_defaults(self):
        out = FactsComparisonOutput.model_validate({"tabela": [{"fato": None}]})
        row = out.tabela[0]
        assert row.fato == ""
        assert row.status == "controverso"
        assert row.relevancia == "media"
        assert out.pontos_chave == []


class TestBulkExtraction:

    def test_keywords_from_comma_string(self):
        out = BulkExtractionOutput.model_validate({"modelos": [
            {"titulo": "Horas extras", "palavrasChave": "jornada, sobrejornada ,cartões", "conteudo": "..."},
        ]})
        assert out.modelos[0].palavras_chave == ["jornada", "sobrejornada", "cartões"]

    def test_keywords_list_and_empty(self):
        out = BulkExtractionOutput.model_validate({"modelos": [
            {"titulo": "A", "palavrasChave": ["x"], "conteudo": "c"},
            {"titulo": "B", "palavrasChave": "", "conteudo": "c"},
        ]})
        assert out.modelos[0].palavras_chave == ["x"]
        assert out.modelos[1].palavras_chave == []

    def test_semantic_requires_content(self):
        out = BulkExtractionOutput.model_validate({"modelos": [{"titulo": "A"}]})
        ok, error = validate_bulk_extraction(out)
        assert not ok
        assert "no content" in error
