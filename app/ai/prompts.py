"""Italian prompt templates for lesson generation and curriculum parsing."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final, assert_never

from app.schema.lessons import CONTENT_TYPE_LABELS, ContentType

DEFAULT_DOCUMENT_CHARS: Final[int] = 8000

CONTINUATION_PROMPT: Final[str] = "Continua esattamente da dove ti sei fermato. Scrivi SOLO il resto del JSON, senza ripetere ciò che hai già scritto."

_LESSON_JSON_FORMAT: Final[str] = """{
  "sections": [
    {
      "id": "stringa-unica",
      "type": "introduction|explanation|example|exercise|summary|deepening",
      "title": "Titolo sezione",
      "content": "Contenuto della sezione in markdown",
      "order": 0
    }
  ],
  "objectives": ["Obiettivo 1", "Obiettivo 2"],
  "prerequisites": ["Prerequisito 1"],
  "estimatedDuration": 60,
  "targetGrade": "Classe target (es. 3a superiore)",
  "keywords": ["parola1", "parola2"]
}"""

_MIND_MAP_JSON_FORMAT: Final[str] = """{
  "sections": [
    {
      "id": "stringa-unica",
      "type": "introduction|explanation|summary",
      "title": "Titolo sezione",
      "content": "Contenuto della sezione in markdown",
      "order": 0
    }
  ],
  "objectives": ["Obiettivo 1", "Obiettivo 2"],
  "prerequisites": ["Prerequisito 1"],
  "estimatedDuration": 30,
  "targetGrade": "Classe target (es. 3a superiore)",
  "keywords": ["parola1", "parola2"],
  "mindMap": {
    "root": {
      "id": "radice",
      "label": "Concetto centrale",
      "description": "Descrizione in una riga",
      "explanation": "Spiegazione più estesa (facoltativa)",
      "children": [
        {"id": "concetto-1", "label": "Concetto", "description": "Descrizione in una riga", "children": []}
      ]
    },
    "crossLinks": [{"fromId": "concetto-1", "toId": "concetto-2", "label": "relazione"}]
  }
}"""

_LESSON_RULES: Final[str] = """Regole:
- Rispondi SOLO con JSON puro, senza code fences o altro testo
- Contenuto sezioni in markdown
- Id sezione unico in kebab-case (es. "intro-1", "exercise-2")
- Ordine sezioni da 0
- estimatedDuration in minuti
- Contenuto adatto a un contesto scolastico italiano
- Sii completo ma conciso: evita ripetizioni e frasi di riempimento, vai dritto ai concetti"""

_MIND_MAP_RULES: Final[str] = """- Id dei nodi della mappa unici in kebab-case, anche tra rami diversi
- Etichette dei nodi brevi (massimo 5 parole)
- crossLinks solo tra nodi esistenti"""


def section_guidance(content_type: ContentType) -> str:
  """Return the section structure the model should follow for a content type."""
  if content_type is ContentType.LEZIONE:
    return """Struttura la lezione con le seguenti sezioni:
- introduction: introduzione all'argomento
- explanation: spiegazione dettagliata dei concetti chiave (puoi usare più sezioni explanation)
- example: esempi pratici
- exercise: esercizi per verificare la comprensione
- summary: riepilogo dei punti principali"""
  if content_type is ContentType.VERIFICA_SCRITTA:
    return """Struttura la verifica scritta con:
- introduction: intestazione con istruzioni per lo studente, tempo a disposizione, punteggio
- exercise: domande/esercizi della verifica (usa più sezioni exercise, numerate)
- summary: griglia di valutazione e soluzioni"""
  if content_type is ContentType.ESERCIZIO_RISPOSTA_MULTIPLA:
    return """Struttura l'esercizio a risposta multipla con:
- introduction: istruzioni per lo studente
- exercise: domande con 4 opzioni di risposta ciascuna (usa più sezioni exercise). Indica la risposta corretta tra le opzioni.
- summary: soluzioni con spiegazioni"""
  if content_type is ContentType.ESERCIZIO_RISPOSTA_APERTA:
    return """Struttura l'esercizio a risposta aperta con:
- introduction: istruzioni per lo studente
- exercise: domande aperte con spazio per la risposta (usa più sezioni exercise)
- summary: tracce di risposta e criteri di valutazione"""
  if content_type is ContentType.ESERCITAZIONE_LABORATORIO:
    return """Struttura l'esercitazione di laboratorio con:
- introduction: obiettivi dell'esercitazione e materiali necessari
- explanation: fondamenti teorici
- exercise: procedura step-by-step dell'esercitazione
- summary: domande di riflessione e relazione finale"""
  if content_type is ContentType.COMPITO_IN_CLASSE:
    return """Struttura il compito in classe con:
- introduction: intestazione con istruzioni, tempo, punteggio per esercizio
- exercise: esercizi/problemi del compito (usa più sezioni exercise, con difficoltà crescente)
- summary: griglia di valutazione e soluzioni"""
  if content_type is ContentType.APPROFONDIMENTO:
    return """Struttura l'approfondimento con:
- introduction: contesto e motivazione dell'approfondimento
- explanation: trattazione approfondita dell'argomento
- deepening: aspetti avanzati, collegamenti interdisciplinari
- example: casi studio o esempi concreti
- summary: conclusioni e spunti per ulteriori ricerche"""
  if content_type is ContentType.ESERCIZIO_GUIDATO:
    return """Struttura l'esercizio guidato con:
- introduction: obiettivo dell'esercizio e richiami teorici essenziali
- example: un esercizio svolto passo per passo, spiegando il ragionamento di ogni passaggio
- exercise: esercizi simili da svolgere con suggerimenti progressivi (usa più sezioni exercise, con difficoltà crescente)
- summary: soluzioni commentate ed errori comuni da evitare"""
  if content_type is ContentType.MAPPA_CONCETTUALE:
    return """Struttura la mappa concettuale con:
- introduction: presentazione dell'argomento e di come leggere la mappa
- explanation: descrizione dei concetti principali e delle loro relazioni
- summary: sintesi dei collegamenti più importanti
Includi inoltre il campo "mindMap": un nodo radice con l'argomento e nodi figli per i concetti, fino a 3-4 livelli di profondità. Usa crossLinks per le relazioni tra rami diversi."""
  assert_never(content_type)


def format_module_context(program_title: str, module_name: str, sibling_titles: Sequence[str]) -> str:
  """Describe where a topic sits in its program so the output stays coherent with siblings."""
  return f'Programma: "{program_title}", Modulo: "{module_name}", Argomenti del modulo: {", ".join(sibling_titles)}'


def build_prompt(
  content_type: ContentType,
  title: str,
  discipline_name: str,
  *,
  description: str | None = None,
  module_context: str | None = None,
  document_text: str | None = None,
  document_chars: int = DEFAULT_DOCUMENT_CHARS,
) -> str:
  """Build the single user prompt for one generation."""
  label = CONTENT_TYPE_LABELS[content_type]
  prompt = f'Sei un esperto docente italiano di {discipline_name}. Genera un contenuto di tipo "{label}" sull\'argomento: "{title}".'

  if description:
    prompt += f"\n\nDescrizione/istruzioni aggiuntive: {description}"
  if module_context:
    prompt += f"\n\nContesto del modulo: {module_context}"
  if document_text:
    # Excerpts are capped at `document_chars` characters.
    prompt += f"\n\nDocumento di riferimento (usa come base per il contenuto):\n{document_text[:document_chars]}"

  is_mind_map = content_type is ContentType.MAPPA_CONCETTUALE
  json_format = _MIND_MAP_JSON_FORMAT if is_mind_map else _LESSON_JSON_FORMAT
  rules = f"{_LESSON_RULES}\n{_MIND_MAP_RULES}" if is_mind_map else _LESSON_RULES

  prompt += f"\n\n{section_guidance(content_type)}"
  prompt += f"\n\nRispondi SOLO con un JSON valido nel seguente formato, senza markdown o altro testo:\n{json_format}"
  prompt += f"\n\n{rules}"
  return prompt


def build_parsing_prompt(discipline_name: str, raw_content: str) -> str:
  """Build the prompt that extracts modules and topics from a program text."""
  return f"""Sei un esperto di didattica scolastica italiana. Analizza il seguente programma di disciplina "{discipline_name}" e estrai la struttura in moduli e argomenti.

PROGRAMMA:
{raw_content}

Rispondi SOLO con un JSON valido nel seguente formato, senza markdown o altro testo:
{{
  "modules": [
    {{
      "name": "Nome del modulo",
      "description": "Breve descrizione opzionale",
      "topics": [
        {{
          "title": "Titolo dell'argomento",
          "description": "Breve descrizione opzionale"
        }}
      ]
    }}
  ]
}}

Regole:
- Ogni modulo deve avere almeno un argomento
- I titoli devono essere concisi ma descrittivi
- Mantieni l'ordine logico del programma originale
- Se il testo non contiene una struttura chiara, cerca di organizzarlo in moduli tematici"""
