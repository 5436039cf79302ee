FHIR_JSON_MEDIA_TYPE = "application/fhir+json"

BACKPORT_BASE = "http://hl7.org/fhir/uv/subscriptions-backport/StructureDefinition"
FILTER_CRITERIA_EXTENSION = f"{BACKPORT_BASE}/backport-filter-criteria"
PAYLOAD_CONTENT_EXTENSION = f"{BACKPORT_BASE}/backport-payload-content"
NOTIFICATION_BUNDLE_PROFILE = f"{BACKPORT_BASE}/backport-subscription-notification-r4"
SUBSCRIPTION_STATUS_PROFILE = f"{BACKPORT_BASE}/backport-subscription-status-r4"
SUBSCRIPTION_PROFILE = f"{BACKPORT_BASE}/backport-subscription"

ORGANIZATION_FILTER_KEY = "org-identifier"
REST_HOOK_CHANNEL = "rest-hook"
