"""Error kinds raised by the message pipeline and its collaborators."""


class PlantVisionError(Exception):
    """Base class for all service errors."""


class ConfigurationError(PlantVisionError):
    """Required settings are missing or invalid. Fatal at startup."""


class CollaboratorUnavailable(PlantVisionError):
    """Network failure or timeout talking to the ledger, oracle, AI provider or messenger."""


class GenerationError(PlantVisionError):
    """AI provider rejected the request or returned no usable reply."""


class DeliveryError(PlantVisionError):
    """Outbound WhatsApp send failed."""


class UnsupportedMessageError(PlantVisionError):
    """Inbound message type cannot be turned into a prompt."""

    def __init__(self, message_type: str) -> None:
        super().__init__(f"unsupported message type: {message_type}")
        self.message_type = message_type
