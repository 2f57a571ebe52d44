"""Service payloads -> plain-text tool output.

Sections use bracketed headers ([ANSWER], [SOURCES], [CLASSIFICATION],
...) because MCP tool output is read as plain text by the calling model.
"""

from __future__ import annotations

from typing import Any


def _classification_lines(classification: dict[str, Any]) -> list[str]:
    return [
        f"Domain: {classification.get('domain', 'other')}",
        f"Query type: {classification.get('queryType', 'informational')}",
        f"Confidence: {classification.get('confidence', 'medium')}",
        f"Keywords: {', '.join(classification.get('keywords') or []) or '(none)'}",
    ]


def _source_label(source: dict[str, Any]) -> str:
    if source.get("type") == "web":
        title = source.get("title") or source.get("hostname") or "Web page"
        return f"{title} ({source.get('url')})"
    label = source.get("filename") or "Unknown"
    similarity = source.get("similarity")
    if similarity is not None:
        label += f" (similarity {similarity:.2f})"
    return label


def format_classification(payload: dict[str, Any]) -> str:
    lines = ["[CLASSIFICATION]", *_classification_lines(payload["classification"])]
    return "\n".join(lines)


def format_answer(payload: dict[str, Any]) -> str:
    lines = ["[ANSWER]", payload["response"], ""]
    lines.append("[SOURCES]")
    sources = payload.get("sources") or []
    if sources:
        lines += [f"[Source {i}] {_source_label(s)}" for i, s in enumerate(sources, 1)]
    else:
        lines.append("(none)")
    lines += ["", "[CLASSIFICATION]", *_classification_lines(payload["classification"])]
    lines += ["", "[STATS]", f"Source type: {payload['sourceType']}", f"Sources used: {payload['sourcesUsed']}"]
    return "\n".join(lines)


def format_search(payload: dict[str, Any]) -> str:
    chunks = payload.get("chunks") or []
    lines = ["[EVIDENCE]"]
    if not chunks:
        lines.append("No indexed documents matched this query.")
    for i, chunk in enumerate(chunks, 1):
        lines.append(
            f"[Source {i}: {chunk.get('document_filename') or 'Unknown'}] "
            f"(similarity {chunk.get('similarity', 0.0):.2f})"
        )
        lines.append(chunk.get("content", ""))
        lines.append("")
    lines += ["[STATS]", f"Total found: {payload.get('totalFound', len(chunks))}"]
    return "\n".join(lines)


def format_ingestion(payload: dict[str, Any]) -> str:
    data = payload.get("data") or {}
    lines = ["[INGESTED]"]
    if "documentId" in payload:
        lines += [f"Document ID: {payload['documentId']}", f"Chunks: {payload['chunksProcessed']}"]
    else:
        lines += [
            f"Title: {data.get('title')}",
            f"Source: {data.get('source_url')}",
            f"Document ID: {data.get('document_id')}",
            f"Chunks: {data.get('chunks_created')}",
        ]
    return "\n".join(lines)


def format_kanoon(payload: dict[str, Any]) -> str:
    data = payload.get("data") or {}
    if data.get("message"):
        return f"[NOTICE]\n{data['message']}\n{data.get('alternative', '')}".rstrip()
    results = data.get("results") or []
    lines = [f"[RESULTS] {data.get('total_results', len(results))} total"]
    for i, result in enumerate(results, 1):
        lines.append(f"{i}. {result.get('title')} ({result.get('url')})")
        details = [v for v in (result.get("source"), result.get("date"), result.get("citation")) if v]
        if details:
            lines.append("   " + " | ".join(details))
        if result.get("headline"):
            lines.append(f"   {result['headline']}")
    if "ingested" in data:
        ingested = data["ingested"]
        lines += ["", "[INGESTED]", *(ingested or ["(none)"])]
    return "\n".join(lines)


def format_data_gov(payload: dict[str, Any]) -> str:
    data = payload.get("data") or {}
    if "instructions" in data:
        lines = ["[NOTICE]", data["message"], *data["instructions"], "", "Example resources:"]
        lines += [f"- {r['name']}: {r['id']}" for r in data.get("example_resources", [])]
        return "\n".join(lines)
    lines = [
        f"[RESOURCE] {data.get('index_name')}",
        f"Total records: {data.get('total')}",
        f"Ingested: {'yes' if data.get('ingested') else 'no'}",
    ]
    if data.get("description"):
        lines.append(data["description"])
    records = data.get("records") or []
    for i, record in enumerate(records[:10], 1):
        lines.append(f"Record {i}: " + "; ".join(f"{k}={v}" for k, v in record.items()))
    if len(records) > 10:
        lines.append(f"... {len(records) - 10} more records")
    return "\n".join(lines)
