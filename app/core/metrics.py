"""
Prometheus metrics shared by the API and the Celery workers
"""

from prometheus_client import Counter, Histogram, Gauge

# HTTP
REQUEST_COUNT = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('http_request_duration_seconds', 'HTTP request duration', ['method', 'endpoint'])
ACTIVE_CONNECTIONS = Gauge('http_active_connections', 'Number of active HTTP connections')

# Connection codes
CODES_ISSUED = Counter('connection_codes_issued_total', 'Connection codes issued', ['kind'])
CODE_RESOLUTIONS = Counter('connection_code_resolutions_total', 'Connection code resolutions', ['outcome'])
SCANS_RECORDED = Counter('qr_scans_recorded_total', 'QR scans recorded', ['status'])

# Invitations
INVITATIONS_SUBMITTED = Counter('invitations_submitted_total', 'Invitation requests submitted', ['outcome'])
INVITATION_EMAILS = Counter('invitation_emails_total', 'Invitation email deliveries', ['status'])
INVITATIONS_LINKED = Counter('invitations_linked_total', 'Invitations linked on registration')

# Sweep
SWEEP_ROWS = Counter('sweep_rows_total', 'Rows retired by the cleanup sweep', ['kind'])
