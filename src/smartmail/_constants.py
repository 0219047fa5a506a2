"""Internal constants shared across the package."""

MQTT_HOST = "eu.thethings.network"
MQTT_PORT = 1883
UPLINK_TOPIC = "+/devices/+/up"
ACTIVATION_TOPIC = "+/devices/+/activations"

THREEMA_API_URL = "https://msgapi.threema.ch"

# Uplink ports as assigned by the sensor firmware.
DEFAULT_KEEPALIVE_PORT = 101
DEFAULT_DISTANCE_PORT = 102

#: If the distance falls below this value (mm), the mailbox holds mail.
DEFAULT_THRESHOLD_MM = 300

# ------------------------------------------------------------------
# Process exit statuses for start-up failures
# ------------------------------------------------------------------

EXIT_CONFIG = 1
EXIT_GATEWAY = 2
EXIT_MQTT = 3
