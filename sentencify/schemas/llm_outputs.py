"""Pydantic schemas for LLM outputs.

These schemas define the structure expected from each model call. Every
response goes through ``parse_ai_response`` against one of them before the
rest of the application sees it.

Default-filling rules are part of the contract, since downstream features
read the defaulted values rather than checking for absent fields:
  - null or missing strings become ""
  - missing arrays become []
  - numeric strings become numbers (``numero``)
  - numbers become strings for monetary values (``valor``)
  - a comma-separated string becomes a keyword list (``palavras_chave``)
  - unknown fields are kept (``model_extra``)
"""

from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


def _number_to_str(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _split_keywords(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",")] if value else []
    return value


def _default_severity(value: Any) -> Any:
    return "media" if value is None else value


Text = Annotated[str, BeforeValidator(_none_to_empty)]
Money = Annotated[Optional[str], BeforeValidator(_number_to_str)]
Keywords = Annotated[list[str], BeforeValidator(_split_keywords)]
Level = Literal["alta", "media", "baixa"]


class OutputModel(BaseModel):
    """Base for model outputs: keeps unknown fields, accepts camelCase keys."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


# =============================================================================
# TOPIC EXTRACTION
# =============================================================================

class Parties(OutputModel):
    reclamante: Text = ""
    reclamadas: list[str] = Field(default_factory=list)


class Topic(OutputModel):
    title: Text = ""
    category: Text = ""


class TopicExtractionOutput(OutputModel):
    """Output of topic extraction: the parties and the list of legal topics."""

    partes: Parties = Field(default_factory=Parties)
    topics: list[Topic] = Field(default_factory=list)


# =============================================================================
# STRUCTURED LEGAL ANALYSIS
# =============================================================================

class CaseIdentification(OutputModel):
    numero_processo: Optional[str] = Field(default=None, alias="numeroProcesso")
    reclamantes: list[str] = Field(default_factory=list)
    reclamadas: list[str] = Field(default_factory=list)
    rito: Optional[str] = None
    vara: Optional[str] = None
    data_ajuizamento: Optional[str] = Field(default=None, alias="dataAjuizamento")


class Claim(OutputModel):
    """One claim ("pedido") in the initial petition."""

    numero: Optional[int] = None
    tema: Text = ""
    descricao: Text = ""
    periodo: Optional[str] = None
    valor: Money = None
    fatos_reclamante: Text = Field(default="", alias="fatosReclamante")
    defesa_reclamada: Text = Field(default="", alias="defesaReclamada")
    tese_juridica: Text = Field(default="", alias="teseJuridica")
    controversia: bool = True
    confissao_ficta: Optional[str] = Field(default=None, alias="confissaoFicta")
    pontos_esclarecer: list[str] = Field(default_factory=list, alias="pontosEsclarecer")


class Alert(OutputModel):
    tipo: Text = ""
    descricao: Text = ""
    severidade: Annotated[Level, BeforeValidator(_default_severity)] = "media"
    recomendacao: Text = ""


class AnalysisOutput(OutputModel):
    """Structured analysis of a case before the hearing."""

    identificacao: Optional[CaseIdentification] = None
    contrato: Any = None
    tutelas_provisorias: list[Any] = Field(default_factory=list, alias="tutelasProvisoras")
    preliminares: list[Any] = Field(default_factory=list)
    prejudiciais: Any = None
    pedidos: list[Claim] = Field(default_factory=list)
    reconvencao: Any = None
    defesas_autonomas: list[Any] = Field(default_factory=list, alias="defesasAutonomas")
    impugnacoes: Any = None
    provas: Any = None
    valor_causa: Any = Field(default=None, alias="valorCausa")
    alertas: list[Alert] = Field(default_factory=list)
    tabela_sintetica: list[Any] = Field(default_factory=list, alias="tabelaSintetica")


# =============================================================================
# DOUBLE CHECK
# =============================================================================

CorrectionType = Literal[
    "remove",
    "add",
    "merge",
    "reclassify",
    "modify",
    "improve",
    "false_positive",
    "missed",
    "add_row",
    "fix_row",
    "remove_row",
    "add_fato",
]


class Correction(OutputModel):
    """One change proposed by the audit pass."""

    type: CorrectionType
    description: Text = ""
    original: Optional[str] = None
    corrected: Optional[str] = None


class DoubleCheckOutput(OutputModel):
    """Audit pass output.

    The verified artifact itself arrives in an operation-specific extra field
    (``verifiedTopics``, ``verifiedDispositivo``, ...), read via ``model_extra``.
    """

    corrections: list[Correction] = Field(default_factory=list)
    confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    summary: Text = ""

    def extra_field(self, name: str) -> Any:
        return (self.model_extra or {}).get(name)


# =============================================================================
# FACTS COMPARISON
# =============================================================================

class FactRow(OutputModel):
    tema: Optional[str] = None
    fato: Text = ""
    alegacao_reclamante: Text = Field(default="", alias="alegacaoReclamante")
    alegacao_reclamada: Text = Field(default="", alias="alegacaoReclamada")
    posicao_reclamante: Optional[str] = Field(default=None, alias="posicaoReclamante")
    posicao_reclamada: Optional[str] = Field(default=None, alias="posicaoReclamada")
    status: Literal["controverso", "incontroverso", "silencio"] = "controverso"
    classificacao: Optional[str] = None
    relevancia: Level = "media"
    observacao: Optional[str] = None


class FactsComparisonOutput(OutputModel):
    """Side-by-side comparison of the parties' factual allegations."""

    tabela: list[FactRow] = Field(default_factory=list)
    fatos_incontroversos: list[str] = Field(default_factory=list, alias="fatosIncontroversos")
    fatos_controversos: list[str] = Field(default_factory=list, alias="fatosControversos")
    pontos_chave: list[str] = Field(default_factory=list, alias="pontosChave")
    resumo: str = ""


# =============================================================================
# BULK MODEL EXTRACTION
# =============================================================================

class BulkModel(OutputModel):
    """A reusable decision template extracted from an uploaded document."""

    titulo: Text = ""
    categoria: Text = ""
    palavras_chave: Keywords = Field(default_factory=list, alias="palavrasChave")
    conteudo: Text = ""


class BulkExtractionOutput(OutputModel):
    modelos: list[BulkModel] = Field(default_factory=list)
