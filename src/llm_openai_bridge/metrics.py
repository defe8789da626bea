"""Prometheus metrics exposition."""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, Info, generate_latest

from llm_openai_bridge import __version__

APP_INFO = Info("llm_openai_bridge", "Application information")
APP_INFO.info({"version": __version__})

REQUESTS_TOTAL = Counter(
    "bridge_requests_total",
    "Completion requests handled",
    ["endpoint", "model", "stream"],
)

TOKENS_TOTAL = Counter(
    "bridge_tokens_total",
    "Tokens counted for prompts and completions",
    ["endpoint", "kind"],
)

REQUEST_ERRORS_TOTAL = Counter(
    "bridge_request_errors_total",
    "Requests answered with an error envelope",
    ["endpoint", "status"],
)

RESPONSE_TIME = Histogram(
    "bridge_response_time_seconds",
    "Time until the response body (or the first SSE frame) is ready",
    ["endpoint"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)


class MetricsExporter:
    """Records bridge metrics and renders them in Prometheus format."""

    @staticmethod
    def get_prometheus_format() -> tuple[str, bytes]:
        """Get metrics in Prometheus exposition format.

        Returns:
            Tuple of (content_type, metrics_body)
        """
        return CONTENT_TYPE_LATEST, generate_latest()

    @staticmethod
    def record_request(endpoint: str, model: str, stream: bool, elapsed: float) -> None:
        REQUESTS_TOTAL.labels(
            endpoint=endpoint,
            model=model,
            stream="true" if stream else "false",
        ).inc()
        RESPONSE_TIME.labels(endpoint=endpoint).observe(elapsed)

    @staticmethod
    def record_tokens(endpoint: str, prompt_tokens: int = 0, completion_tokens: int = 0) -> None:
        if prompt_tokens:
            TOKENS_TOTAL.labels(endpoint=endpoint, kind="prompt").inc(prompt_tokens)
        if completion_tokens:
            TOKENS_TOTAL.labels(endpoint=endpoint, kind="completion").inc(completion_tokens)

    @staticmethod
    def record_error(endpoint: str, status: int) -> None:
        REQUEST_ERRORS_TOTAL.labels(endpoint=endpoint, status=str(status)).inc()
