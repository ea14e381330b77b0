from prometheus_client import Counter, Histogram

# HTTP
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_DURATION = Histogram("http_request_duration_seconds", "HTTP request duration")

# Job pipeline
JOBS_SUBMITTED = Counter("jobs_submitted_total", "Jobs accepted by the submission gateway", ["vendor"])
JOBS_DISPATCHED = Counter("jobs_dispatched_total", "Dispatcher outcomes per job", ["vendor", "outcome"])
VENDOR_CALL_DURATION = Histogram("vendor_call_duration_seconds", "Outbound vendor call duration", ["vendor"])
WEBHOOKS_RECEIVED = Counter("vendor_webhooks_total", "Inbound vendor callbacks", ["vendor", "outcome"])
