"""smartmail - mailbox occupancy notifications from a LoRaWAN distance sensor."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("smartmail")
except PackageNotFoundError:
    __version__ = "0+local"
from smartmail.config import InfluxConfig, SmartmailConfig
from smartmail.dispatcher import UplinkDispatcher
from smartmail.envelope import Uplink, UplinkMetadata, parse_uplink
from smartmail.exceptions import (
    SmartmailConfigError,
    SmartmailEnvelopeError,
    SmartmailError,
    SmartmailGatewayError,
    SmartmailTelemetryError,
    SmartmailTransportError,
)
from smartmail.lpp import (
    AnalogInput,
    Channel,
    ChannelKind,
    Distance,
    LppDecoder,
    Measurement,
    Temperature,
    decode,
)
from smartmail.state.events import TransitionEvent, TransitionKind
from smartmail.state.tracker import MailboxState, MailboxTracker

__all__ = [
    "__version__",
    "AnalogInput",
    "Channel",
    "ChannelKind",
    "Distance",
    "InfluxConfig",
    "LppDecoder",
    "MailboxState",
    "MailboxTracker",
    "Measurement",
    "SmartmailConfig",
    "SmartmailConfigError",
    "SmartmailEnvelopeError",
    "SmartmailError",
    "SmartmailGatewayError",
    "SmartmailTelemetryError",
    "SmartmailTransportError",
    "Temperature",
    "TransitionEvent",
    "TransitionKind",
    "Uplink",
    "UplinkDispatcher",
    "UplinkMetadata",
    "decode",
    "parse_uplink",
]
