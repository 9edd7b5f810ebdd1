"""Prompt for ordering legal topics into procedural order.

The model answers with 1-based indices ({"order": [3, 1, 2]}) rather than
repeating the titles, so the response stays short and the topics are mapped
back deterministically by ``sentencify.llm.ordering.resolve_order``.

Placeholders:
  {topics}  numbered list, one topic per line: 1. "TITLE" (category)
"""

ORDER_TOPICS_USER = """\
Reordene os seguintes tópicos de uma ação trabalhista na ordem processual correta:

ORDEM PROCESSUAL:
1. RELATÓRIO
2. TRAMITAÇÃO
3. IMPUGNAÇÃO AOS DOCUMENTOS
4. PRELIMINARES (Art. 337 CPC)
5. PREJUDICIAIS (prescrição, decadência)
6. MÉRITO (declaratórios, obrigações de fazer, condenatórios, responsabilidade,
   justiça gratuita, honorários por último)
7. QUESTÕES FINAIS

TÓPICOS A ORDENAR:
{topics}

Responda APENAS com JSON: {{"order": [1, 3, 2, ...]}}
Use os números originais da lista."""


def format_topic_list(items) -> str:
    return "\n".join(
        f'{i}. "{item.title}" ({item.category})' for i, item in enumerate(items, start=1)
    )
