"""
Grafana OTLP Metrics Exporter
==============================

Pushes pipeline metrics to Grafana Cloud via OTLP.

Metrics exported:
- llm_tokens_total / llm_latency_ms: completion usage per call
- guardrail_decisions_total / guardrail_confidence: one point per guarded query
- ingestion_chunks_stored / ingestion_latency_ms: one point per processed document

Export is best-effort: failures are logged and never reach the caller.
"""

import base64
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from src.config import settings
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# (name, unit, description, value)
MetricPoint = Tuple[str, str, str, float]


class GrafanaOTLPExporter:
    """
    Export metrics to Grafana Cloud via the OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) JSON format with gauge data points.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        timeout: float = 10.0
    ):
        """
        Initialize Grafana OTLP exporter.

        Args:
            host: Grafana OTLP gateway URL
            api_key: Grafana API key
            instance_id: Instance ID for authentication
            timeout: HTTP timeout in seconds
        """
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._timeout = timeout
        self._enabled = bool(self._host and self._api_key and self._instance_id)
        self._url = ""
        self._auth_encoded = ""

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.info(
                "Grafana OTLP exporter not configured - metrics will not be exported",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id)
                }
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    def build_payload(
        self,
        points: List[MetricPoint],
        attributes: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build an OTLP metrics payload with one gauge per point."""
        timestamp_ns = int(time.time() * 1_000_000_000)
        metric_attributes = [
            {"key": "service", "value": {"stringValue": settings.app_name}},
        ]
        for key, value in (attributes or {}).items():
            metric_attributes.append({"key": key, "value": {"stringValue": str(value)}})

        metrics = []
        for name, unit, description, value in points:
            data_point: Dict[str, Any] = {
                "timeUnixNano": timestamp_ns,
                "attributes": metric_attributes,
            }
            if isinstance(value, int) and not isinstance(value, bool):
                data_point["asInt"] = value
            else:
                data_point["asDouble"] = float(value)
            metrics.append({
                "name": name,
                "unit": unit,
                "description": description,
                "gauge": {"dataPoints": [data_point]},
            })

        return {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": [
                            {"key": "service.name", "value": {"stringValue": settings.app_name}},
                            {"key": "service.version", "value": {"stringValue": settings.app_version}},
                            {"key": "deployment.environment", "value": {"stringValue": settings.environment}},
                        ]
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }

    async def _send(self, payload: Dict[str, Any], kind: str) -> bool:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.warning(
                "Error exporting metrics to Grafana",
                extra={"kind": kind, "error": str(e)}
            )
            return False

        if response.status_code in (200, 202):
            logger.debug("Metrics exported to Grafana", extra={"kind": kind})
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "kind": kind,
                "status_code": response.status_code,
                "response": response.text[:500]
            }
        )
        return False

    async def export_llm_metrics(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        operation: str = "chat_completion"
    ) -> bool:
        """Export completion usage for one LLM call."""
        if not self._enabled:
            return False
        payload = self.build_payload(
            [
                ("llm_tokens_total", "1", "Total tokens used in LLM requests",
                 prompt_tokens + completion_tokens),
                ("llm_prompt_tokens", "1", "Prompt tokens in LLM requests", prompt_tokens),
                ("llm_completion_tokens", "1", "Completion tokens generated", completion_tokens),
                ("llm_latency_ms", "ms", "LLM request latency in milliseconds", latency_ms),
            ],
            {"model": model, "operation": operation}
        )
        return await self._send(payload, "llm")

    async def export_guardrail_decision(
        self,
        outcome: str,
        reason: Optional[str],
        confidence: Optional[float],
        sources: int,
        latency_ms: int
    ) -> bool:
        """Export the outcome of one guarded query."""
        if not self._enabled:
            return False
        points: List[MetricPoint] = [
            ("guardrail_decisions_total", "1", "Guarded queries by outcome", 1),
            ("guardrail_sources_retrieved", "1", "Sources retrieved for the query", sources),
            ("guardrail_latency_ms", "ms", "End-to-end guarded query latency", latency_ms),
        ]
        if confidence is not None:
            points.append(("guardrail_confidence", "1", "Composite answer confidence", confidence))
        payload = self.build_payload(points, {"outcome": outcome, "reason": reason or "none"})
        return await self._send(payload, "guardrail")

    async def export_ingestion_result(
        self,
        status: str,
        chunks_stored: int,
        chunks_failed: int,
        latency_ms: int
    ) -> bool:
        """Export the result of one document ingestion run."""
        if not self._enabled:
            return False
        payload = self.build_payload(
            [
                ("ingestion_chunks_stored", "1", "Chunks stored for a document", chunks_stored),
                ("ingestion_chunks_failed", "1", "Chunks skipped for a document", chunks_failed),
                ("ingestion_latency_ms", "ms", "Document processing latency", latency_ms),
            ],
            {"status": status}
        )
        return await self._send(payload, "ingestion")


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> GrafanaOTLPExporter:
    """Get or create global Grafana exporter instance."""
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter


def init_grafana_exporter(
    host: str,
    api_key: str,
    instance_id: str
) -> GrafanaOTLPExporter:
    """Initialize Grafana exporter with credentials."""
    global _grafana_exporter
    _grafana_exporter = GrafanaOTLPExporter(
        host=host,
        api_key=api_key,
        instance_id=instance_id
    )
    return _grafana_exporter
