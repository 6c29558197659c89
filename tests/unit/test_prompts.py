from __future__ import annotations

import pytest

from app.ai.prompts import CONTINUATION_PROMPT, build_parsing_prompt, build_prompt, format_module_context, section_guidance
from app.schema.lessons import CONTENT_TYPE_LABELS, ContentType


@pytest.mark.parametrize("content_type", list(ContentType))
def test_every_content_type_has_guidance_and_a_label(content_type: ContentType) -> None:
  assert section_guidance(content_type).startswith("Struttura")
  prompt = build_prompt(content_type, "Le frazioni", "Matematica")
  assert f'di tipo "{CONTENT_TYPE_LABELS[content_type]}"' in prompt


def test_prompt_opens_with_discipline_and_title() -> None:
  prompt = build_prompt(ContentType.LEZIONE, "Il Risorgimento", "Storia")

  assert prompt.startswith('Sei un esperto docente italiano di Storia. Genera un contenuto di tipo "Lezione" sull\'argomento: "Il Risorgimento".')
  assert '"estimatedDuration": 60' in prompt
  assert "mindMap" not in prompt
  assert "Descrizione/istruzioni aggiuntive" not in prompt
  assert "Contesto del modulo" not in prompt
  assert "Documento di riferimento" not in prompt


def test_optional_blocks_appear_in_order() -> None:
  prompt = build_prompt(ContentType.APPROFONDIMENTO, "Dante", "Italiano", description="Focus sull'Inferno", module_context="Programma: \"Letteratura\"", document_text="Nel mezzo del cammin")

  description_at = prompt.index("Descrizione/istruzioni aggiuntive: Focus sull'Inferno")
  context_at = prompt.index('Contesto del modulo: Programma: "Letteratura"')
  document_at = prompt.index("Documento di riferimento (usa come base per il contenuto):\nNel mezzo del cammin")
  guidance_at = prompt.index("- deepening:")
  assert description_at < context_at < document_at < guidance_at


def test_document_is_cut_to_the_configured_length() -> None:
  prompt = build_prompt(ContentType.LEZIONE, "Titolo", "Fisica", document_text="x" * 50 + "FINE", document_chars=50)

  assert "x" * 50 in prompt
  assert "FINE" not in prompt


def test_concept_map_asks_for_a_mind_map_tree() -> None:
  prompt = build_prompt(ContentType.MAPPA_CONCETTUALE, "La cellula", "Biologia")

  assert '"mindMap"' in prompt
  assert "crossLinks" in prompt
  assert "Etichette dei nodi brevi" in prompt


def test_module_context_lists_sibling_topics() -> None:
  context = format_module_context("Fisica 2B", "Cinematica", ["Moto rettilineo", "Moto circolare"])

  assert context == 'Programma: "Fisica 2B", Modulo: "Cinematica", Argomenti del modulo: Moto rettilineo, Moto circolare'


def test_parsing_prompt_embeds_the_program_text() -> None:
  prompt = build_parsing_prompt("Chimica", "Modulo 1: La materia")

  assert 'disciplina "Chimica"' in prompt
  assert "PROGRAMMA:\nModulo 1: La materia" in prompt
  assert '"modules": [' in prompt


def test_continuation_prompt_forbids_repetition() -> None:
  assert "senza ripetere" in CONTINUATION_PROMPT
