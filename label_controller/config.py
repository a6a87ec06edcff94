"""Configuration settings for the Pod Label Controller."""

# Intent annotation
ADD_LABEL_ANNOTATION = "label-controller/add-label"

# Boolean opt-in used by the first release ("true" requests the pod-name label).
# Set to "" to stop honouring it.
LEGACY_POD_NAME_ANNOTATION = "cloud-demo/add-pod-name-label"
# Label that release wrote; now cleared in favour of POD_NAME_LABEL
LEGACY_POD_NAME_LABEL = "cloud-demo/pod-name"

# Managed labels
LABEL_PREFIX = "label-controller"
POD_NAME_LABEL = f"{LABEL_PREFIX}/pod-name"
POD_NODE_NAME_LABEL = f"{LABEL_PREFIX}/pod-node-name"
POD_IP_LABEL = f"{LABEL_PREFIX}/pod-ip"
LABEL_VALUE_MAX_LENGTH = 63

# Requeue settings
REQUEUE_AFTER_SECONDS = 30
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = float(REQUEUE_AFTER_SECONDS)

# Watch settings
WATCH_TIMEOUT_SECONDS = 300
WATCH_ERROR_BACKOFF_SECONDS = 5
RESYNC_INTERVAL_SECONDS = 300

# Worker settings
DEFAULT_WORKERS = 2
