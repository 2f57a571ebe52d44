"""Query classification.

Two modes:

* LLM   – forced ``classify_query`` function call against the chat model.
* rules – keyword / question-word heuristics (no API calls).

If no LLM API key is configured, or the call fails, or the arguments do
not validate, classification falls back to the rules with a warning.
"""

from __future__ import annotations

import re
import warnings

from pydantic import ValidationError as PydanticValidationError

from rulex.errors import RuleXError, ValidationError
from rulex.generation.llm_client import ChatModel
from rulex.generation.models import QueryClassification
from rulex.generation.prompts import CLASSIFIER_SYSTEM_PROMPT, CLASSIFY_TOOL

# ── Rule tables ───────────────────────────────────────────────────

_DOMAIN_TERMS: dict[str, tuple[str, ...]] = {
    "gst": (
        "gst", "cgst", "sgst", "igst", "utgst", "input tax credit", "itc",
        "gstr", "e-way bill", "eway bill", "goods and services tax", "hsn",
        "reverse charge", "place of supply", "composition scheme",
    ),
    "finance": (
        "income tax", "tds", "tcs", "itr", "section 80c", "capital gains",
        "sebi", "rbi", "banking", "securities", "investment", "dividend",
        "fema", "companies act", "mca", "pan", "assessment year", "tax audit",
    ),
    "criminal": (
        "ipc", "indian penal code", "bns", "bharatiya nyaya", "crpc",
        "bnss", "criminal", "fir", "bail", "pmla", "money laundering",
        "cyber crime", "fraud", "cheating", "arrest", "offence", "offense",
    ),
    "civil": (
        "contract", "property", "tenant", "lease", "succession", "testament",
        "inheritance", "divorce", "marriage", "maintenance", "tort",
        "consumer protection", "consumer", "specific relief", "partition",
        "transfer of property", "civil",
    ),
}

_DECISION_PREFIXES = (
    "is ", "are ", "am i", "can ", "do i", "does ", "do ", "should ",
    "must ", "will ", "whether ", "shall ", "may i", "has ", "have ",
)
_DECISION_TERMS = ("eligible", "eligibility", "allowed", "liable", "required to", "compliant")
_DOCUMENT_TERMS = (
    "document", "uploaded", "this pdf", "the pdf", "attached", "my file",
    "this file", "notification no", "circular no",
)

_STOP = {
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "do", "does",
    "did", "have", "has", "had", "i", "me", "my", "we", "our", "you", "your",
    "it", "its", "and", "or", "but", "if", "of", "at", "by", "for", "with",
    "to", "from", "in", "on", "as", "that", "this", "these", "those", "what",
    "which", "who", "how", "when", "where", "why", "not", "no", "can", "could",
    "should", "would", "will", "shall", "may", "must", "under", "about", "there",
    "any", "tell", "explain", "please",
}


def _domain_hits(query: str) -> dict[str, list[str]]:
    q = f" {query.lower()} "
    hits: dict[str, list[str]] = {}
    for domain, terms in _DOMAIN_TERMS.items():
        matched = [
            term.strip() for term in terms
            if re.search(rf"(?<![a-z0-9]){re.escape(term.strip())}(?![a-z0-9])", q)
        ]
        if matched:
            hits[domain] = matched
    return hits


def _infer_query_type(query: str) -> str:
    q = query.lower().strip()
    if any(term in q for term in _DOCUMENT_TERMS):
        return "document"
    if q.startswith(_DECISION_PREFIXES) or any(term in q for term in _DECISION_TERMS):
        return "decision"
    return "informational"


def _extract_keywords(query: str, domain_terms: list[str]) -> list[str]:
    tokens = re.findall(r"\b[a-zA-Z0-9][a-zA-Z0-9.\-]*\b", query.lower())
    candidates = domain_terms + [t for t in tokens if t not in _STOP and len(t) > 1]
    seen: set[str] = set()
    keywords: list[str] = []
    for candidate in candidates:
        if candidate not in seen:
            seen.add(candidate)
            keywords.append(candidate)
    return keywords[:8]


def rule_based_classify(query: str) -> QueryClassification:
    """Deterministic fallback classification."""
    hits = _domain_hits(query)
    if not hits:
        domain, confidence, matched = "other", "low", []
    else:
        ranked = sorted(hits.items(), key=lambda item: len(item[1]), reverse=True)
        domain, matched = ranked[0]
        if len(ranked) == 1:
            confidence = "high"
        elif len(ranked[0][1]) > len(ranked[1][1]):
            confidence = "medium"
        else:
            confidence = "low"

    return QueryClassification(
        domain=domain,
        query_type=_infer_query_type(query),
        confidence=confidence,
        keywords=_extract_keywords(query, matched),
    )


class QueryClassifier:
    def __init__(self, chat_model: ChatModel | None = None) -> None:
        self._chat_model = chat_model

    async def classify(self, query: str) -> QueryClassification:
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Query is required", "QUERY_MISSING")
        query = query.strip()

        chat_model = self._chat_model
        if chat_model is None or not getattr(chat_model, "configured", True):
            warnings.warn(
                "LLM classification is not configured. Falling back to rule-based classification.",
                stacklevel=2,
            )
            return rule_based_classify(query)

        try:
            arguments = await chat_model.call_tool(
                [
                    {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT},
                    {"role": "user", "content": query},
                ],
                CLASSIFY_TOOL,
            )
            return QueryClassification.model_validate(arguments)
        except (RuleXError, PydanticValidationError) as exc:
            warnings.warn(
                f"LLM classification failed ({exc!r}), falling back to rule-based.",
                stacklevel=2,
            )
            return rule_based_classify(query)
