from prometheus_client import Counter, Histogram, Gauge, REGISTRY


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        # already registered by an earlier import
        return REGISTRY._names_to_collectors[name]


REQUESTS_TOTAL = get_or_create_metric(
    "intake_requests_total",
    "Total API requests",
    Counter,
    labelnames=["endpoint", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "intake_request_latency_seconds",
    "API request latency",
    Histogram,
    labelnames=["endpoint"],
)

PROJECT_SYNCS_TOTAL = get_or_create_metric(
    "intake_project_syncs_total",
    "Project synchronizations with ClickUp by outcome",
    Counter,
    labelnames=["outcome"],
)

PROJECT_CACHE_TOTAL = get_or_create_metric(
    "intake_project_cache_total",
    "Project list cache lookups",
    Counter,
    labelnames=["result"],
)

CLASSIFICATIONS_TOTAL = get_or_create_metric(
    "intake_classifications_total",
    "Project type classifications by source",
    Counter,
    labelnames=["source"],
)

CACHED_PROJECTS = get_or_create_metric(
    "intake_cached_projects", "Projects in the current cached snapshot", Gauge
)
