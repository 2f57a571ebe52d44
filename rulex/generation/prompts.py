"""Prompt text and prompt assembly for classification and grounded answers.

The ruleX persona and its refusal rule are fixed text: the model is told
to answer only from the CONTEXT section and to reply with
``REFUSAL_MESSAGE`` otherwise.  Changing either string changes the
grounding contract.
"""

from __future__ import annotations

from typing import Any

from rulex.generation.models import QueryClassification
from rulex.retrieval.models import RetrievalResult, RetrievedChunk, WebSnippet

REFUSAL_MESSAGE = "❌ No official government data is available for this query at the moment."

# ── Answer generation ─────────────────────────────────────────────

RULEX_SYSTEM_PROMPT = f"""You are ruleX, an AI agent for Indian laws and finance.

ROLE:
Provide accurate information on Indian laws, GST, taxation, and finance.

KNOWLEDGE USAGE:
• Use ONLY the knowledge provided in the CONTEXT section below.
• Do NOT use general AI knowledge or assumptions.
• Do NOT guess or infer missing information.

BEHAVIOR:
• Answer only when exact, verified information exists in the provided context.
• Always mention Act name and Section/Rule number when applicable.
• Keep legal wording accurate and unchanged.
• Be factual, neutral, and professional.
• When citing from documents, mention the source document filename.

REFUSAL RULE:
If the answer is not clearly available in the provided context, respond ONLY with:
{REFUSAL_MESSAGE}

TONE:
Formal, precise, and authoritative.

OUTPUT:
• Clear and concise response
• Structured sentences
• No opinions, no advice, no speculation
• Include source citations when using context"""

CONTEXT_SEPARATOR = "\n\n---\n\n"


def format_chunk_block(index: int, chunk: RetrievedChunk) -> str:
    return f"[Source {index}: {chunk.document_filename or 'Unknown'}]\n{chunk.content}"


def format_snippet_block(index: int, snippet: WebSnippet) -> str:
    label = snippet.title or snippet.hostname
    return f"[Source {index}: {label} ({snippet.url})]\n{snippet.content}"


def context_heading(result: RetrievalResult) -> str:
    if result.mode == "web":
        return "CONTEXT FROM OFFICIAL GOVERNMENT WEBSITES:"
    return "CONTEXT FROM VERIFIED DOCUMENTS:"


def build_context_message(
    query: str,
    classification: QueryClassification,
    context_text: str,
    heading: str = "CONTEXT FROM VERIFIED DOCUMENTS:",
) -> str:
    message = (
        "Query Classification:\n"
        f"- Domain: {classification.domain.upper()}\n"
        f"- Query Type: {classification.query_type}\n"
        f"- Confidence: {classification.confidence}\n"
        f"- Keywords: {', '.join(classification.keywords)}\n"
        "\n"
    )
    if context_text:
        message += f"{heading}\n{context_text}{CONTEXT_SEPARATOR}"
    else:
        message += "CONTEXT: No verified documents found for this query.\n\n"
    message += f"User Query: {query}"
    return message


# ── Classification ────────────────────────────────────────────────

CLASSIFIER_SYSTEM_PROMPT = """You are a legal query classifier for Indian laws. Your job is to analyze user queries and classify them accurately.

Legal Domains:
- finance: Income Tax, Banking regulations, Securities, Investment laws, Corporate finance
- gst: Goods and Services Tax, CGST, SGST, IGST, Input Tax Credit, GST returns
- civil: Contract law, Property law, Family law, Succession, Torts, Consumer protection
- criminal: Indian Penal Code, Criminal Procedure, PMLA, Cyber crimes, Financial crimes
- other: Constitutional law, Administrative law, or queries that don't fit above

Query Types:
- informational: Asking for explanation, definition, or details about a law/section
- decision: YES/NO questions, eligibility checks, compliance questions
- document: Queries referencing specific uploaded documents or asking about document-based analysis

Confidence Levels:
- high: Query clearly falls into a specific domain with clear intent
- medium: Query is somewhat ambiguous but likely falls into a category
- low: Query is vague or spans multiple domains

Extract relevant legal keywords from the query."""

CLASSIFY_TOOL_NAME = "classify_query"

CLASSIFY_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": CLASSIFY_TOOL_NAME,
        "description": "Classify the legal query into domain, type, and confidence level",
        "parameters": {
            "type": "object",
            "properties": {
                "domain": {
                    "type": "string",
                    "enum": ["finance", "gst", "civil", "criminal", "other"],
                    "description": "The legal domain of the query",
                },
                "queryType": {
                    "type": "string",
                    "enum": ["informational", "decision", "document"],
                    "description": "The type of query",
                },
                "confidence": {
                    "type": "string",
                    "enum": ["high", "medium", "low"],
                    "description": "Confidence level in the classification",
                },
                "keywords": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Relevant legal keywords extracted from the query",
                },
            },
            "required": ["domain", "queryType", "confidence", "keywords"],
            "additionalProperties": False,
        },
    },
}
