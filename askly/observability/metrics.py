"""Prometheus metrics for ingestion and question answering.

Exported at /metrics by the API app.
"""

from prometheus_client import Counter, Histogram

DOCUMENTS_INDEXED = Counter(
    "askly_documents_indexed_total",
    "Documents successfully indexed",
    ["source"],
)

DOCUMENTS_FAILED = Counter(
    "askly_documents_failed_total",
    "Documents that failed to index",
    ["source", "category"],
)

CHUNKS_INDEXED = Counter(
    "askly_chunks_indexed_total",
    "Chunks written to the vector store",
    ["source"],
)

QUERIES_TOTAL = Counter(
    "askly_queries_total",
    "Questions answered",
    ["outcome"],  # outcome: answered, no_context, error
)

LLM_LATENCY = Histogram(
    "askly_llm_request_duration_seconds",
    "Language model request latency in seconds",
    ["model"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)
