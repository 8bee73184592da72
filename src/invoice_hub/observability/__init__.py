"""
invoice_hub.observability

structlog setup shared by the API, the reminder worker and the CLI.

API requests carry a request id; worker runs log the job name; policy denials log the
deciding clause.
"""
