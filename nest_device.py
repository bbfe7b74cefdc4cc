"""
Nest device container and directory filtering.

Devices come from the Google Home graph snapshot held by the credential cache;
only Nest hardware exposing a camera stream is archived.
"""

CAMERA_STREAM_TRAIT = "action.devices.traits.CameraStream"
NEST_HARDWARE_MARKER = "Nest"


def is_nest_camera(homegraph_device) -> bool:
    """True when a home graph device streams video and is Nest hardware."""
    traits = list(getattr(homegraph_device, "traits", []) or [])
    hardware = getattr(homegraph_device, "hardware", None)
    model = getattr(hardware, "model", "") or ""
    return CAMERA_STREAM_TRAIT in traits and NEST_HARDWARE_MARKER in model


class NestDevice:
    """
    Lightweight device container.

    Carries no connection: the discovery loop and every download unit pass in
    the GoogleConnection they own.
    """

    def __init__(self, device_id, device_name):
        """
        Initialize a Nest device.

        Args:
            device_id: Nest device ID (e.g., "DEVICE_D7D734D5EEDBEEBA")
            device_name: Human-readable device name (e.g., "Front Door")
        """
        self.device_id = device_id
        self.device_name = device_name

    @classmethod
    def from_homegraph(cls, homegraph_device):
        return cls(
            device_id=homegraph_device.device_info.agent_info.unique_id,
            device_name=homegraph_device.device_name,
        )

    def __eq__(self, other):
        if not isinstance(other, NestDevice):
            return NotImplemented
        return (self.device_id, self.device_name) == (other.device_id, other.device_name)

    def __hash__(self):
        return hash((self.device_id, self.device_name))

    def __repr__(self):
        return f"NestDevice(device_id={self.device_id!r}, device_name={self.device_name!r})"
