"""Prompts for the double-check audit pass.

One template per operation. Each asks a second model to re-examine the
first model's output against the source material and answer with:

  {
    "corrections": [{"type": "...", "description": "...",
                     "original": "...", "corrected": "..."}],
    "confidence": 0.0-1.0,
    "summary": "...",
    "<verified field>": <the corrected artifact, or the original>
  }

Placeholders: {context} and {original_response}, plus {user_prompt} for
quickPrompt. They are filled in a single regex pass, not str.format, so
braces in the filled values are left alone.
"""

import re

_PLACEHOLDER = re.compile(r"\{(user_prompt|original_response|context)\}")

_RESPONSE_FORMAT = """\
Responda APENAS com JSON no formato:
{{
  "corrections": [
    {{"type": "{types}", "description": "...", "original": "...", "corrected": "..."}}
  ],
  "confidence": 0.85,
  "summary": "resumo curto das correções",
  "{verified_field}": {verified_example}
}}
Se não houver correções, retorne corrections: [] e copie o original em {verified_field}."""


def _template(task: str, reviewer: str, subject: str, types: str,
              verified_field: str, verified_example: str) -> str:
    return (
        f"## TAREFA: {task}\n\n"
        f"Você é um revisor jurídico especializado em {reviewer}.\n"
        "Verifique criticamente o resultado abaixo, identificando erros e omissões.\n\n"
        "## DOCUMENTOS ORIGINAIS:\n{context}\n\n"
        f"## {subject} (a verificar):\n{{original_response}}\n\n"
        + _RESPONSE_FORMAT.format(
            types=types,
            verified_field=verified_field,
            verified_example=verified_example,
        )
    )


DOUBLE_CHECK_PROMPTS = {
    "topicExtraction": _template(
        "Verificação de Extração de Tópicos",
        "petições trabalhistas brasileiras",
        "TÓPICOS EXTRAÍDOS",
        "remove|add|merge|reclassify",
        "verifiedTopics",
        '[{"title": "...", "category": "..."}]',
    ),
    "dispositivo": _template(
        "Verificação de Dispositivo",
        "sentenças trabalhistas",
        "DISPOSITIVO",
        "modify|add|remove",
        "verifiedDispositivo",
        '"texto do dispositivo"',
    ),
    "sentenceReview": _template(
        "Verificação de Revisão de Sentença",
        "embargos de declaração",
        "ANÁLISE CRÍTICA",
        "false_positive|missed|improve",
        "verifiedReview",
        '"análise corrigida"',
    ),
    "factsComparison": _template(
        "Verificação de Confronto de Fatos",
        "instrução processual trabalhista",
        "TABELA DE CONFRONTO",
        "add_row|fix_row|remove_row|add_fato",
        "verifiedResult",
        '{"tabela": []}',
    ),
    "proofAnalysis": _template(
        "Verificação de Análise de Provas",
        "valoração de provas",
        "ANÁLISE DE PROVAS",
        "improve|missed|false_positive",
        "verifiedResult",
        '"análise verificada"',
    ),
    "quickPrompt": _template(
        "Verificação de Resposta",
        "direito do trabalho",
        "RESPOSTA",
        "improve|missed|false_positive",
        "verifiedResult",
        '"resposta verificada"',
    ).replace(
        "## DOCUMENTOS ORIGINAIS:",
        "## SOLICITAÇÃO DO USUÁRIO:\n{user_prompt}\n\n## DOCUMENTOS ORIGINAIS:",
    ),
}

# Field holding the corrected artifact, per operation
VERIFIED_FIELDS = {
    "topicExtraction": "verifiedTopics",
    "dispositivo": "verifiedDispositivo",
    "sentenceReview": "verifiedReview",
    "factsComparison": "verifiedResult",
    "proofAnalysis": "verifiedResult",
    "quickPrompt": "verifiedResult",
}


def build_double_check_prompt(
    operation: str,
    original_response: str,
    context: str,
    user_prompt: str = "",
) -> str:
    """Fill the template for ``operation``.

    Raises:
        KeyError: unknown operation.
    """
    template = DOUBLE_CHECK_PROMPTS[operation]
    if not user_prompt:
        template = template.replace("## SOLICITAÇÃO DO USUÁRIO:\n{user_prompt}\n\n", "")
    values = {"user_prompt": user_prompt, "original_response": original_response, "context": context}
    # One pass: placeholder text inside a filled value stays literal
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)
