DOMAIN = "indoor_nav"
VERSION = "0.3.0"

# Config entry keys
CONF_ENTRY_NAME = "entry_name"
CONF_CATALOG_PATH = "catalog_path"
CONF_METERS_PER_UNIT = "meters_per_unit"
CONF_PROXIMITY_THRESHOLD = "proximity_threshold"
CONF_SHORT_RETURN_MAX_DISTANCE = "short_return_max_distance"
CONF_EVENT_QUEUE_SIZE = "event_queue_size"

DEFAULT_ENTRY_NAME = "Indoor Navigation"

# Plan coordinates are floor-plan pixels; one pixel is roughly half a metre.
METERS_PER_UNIT = 0.5

# Route timing
WALKING_SPEED_M_PER_MIN = 80.0   # ~4.8 km/h
CHECKPOINT_DELAY_S = 30.0        # per hop, covers orientation at each checkpoint

# Direction classification (degrees of heading change)
STRAIGHT_ANGLE_DEG = 30.0
BACK_ANGLE_DEG = 150.0

# Deviation severity, straight-line plan units to the nearest route node
MINOR_DEVIATION_LIMIT = 50.0
MODERATE_DEVIATION_LIMIT = 200.0

# Largest straight-line jump accepted between two checkpoints that are not adjacent
PROXIMITY_THRESHOLD = 100.0

# A return-to-route leg must be shorter than this (metres) to be stitched
SHORT_RETURN_MAX_DISTANCE = 100.0

# Alternative routes
ALTERNATIVE_EDGE_PENALTY = 3.0
ALTERNATIVE_MAX_SIMILARITY = 0.7

# Steps a user may fall behind on the route before it counts as a deviation
MAX_BACKTRACK_STEPS = 2

# Tag payloads
CHECKSUM_LENGTH = 16
MAX_PAYLOAD_BYTES = 8192
REQUIRED_PAYLOAD_FIELDS = ("locationId", "checksum", "timestamp")

# Reader event queue
EVENT_QUEUE_SIZE = 32

# Home Assistant tag integration
TAG_DOMAIN = "tag"
EVENT_TAG_SCANNED = "tag_scanned"

# Services
SERVICE_SET_CURRENT_LOCATION = "set_current_location"
SERVICE_SET_DESTINATION = "set_destination"
SERVICE_START_NAVIGATION = "start_navigation"
SERVICE_STOP_NAVIGATION = "stop_navigation"
SERVICE_TRIGGER_REROUTING = "trigger_rerouting"
SERVICE_CLEAR_ROUTE = "clear_route"
SERVICE_CLEAR_ERROR = "clear_error"
SERVICE_CLEAR_SESSION = "clear_session"
SERVICE_SCAN_TAG = "scan_tag"

ATTR_LOCATION_ID = "location_id"
ATTR_PAYLOAD = "payload"
