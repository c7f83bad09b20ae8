"""
IPC (Inter-Process Communication) using ZeroMQ.
Carries presentation commands to the display process and its playback events back.
"""

import zmq
import json
import time
from typing import Optional, Dict, Any
from enum import Enum
from src.common.logger import setup_logger

logger = setup_logger(__name__)


class MessageType(Enum):
    """Types of messages exchanged with the display process."""
    PRESENT = "present"           # Show an item (player -> display)
    CLEAR = "clear"               # Blank the screen (player -> display)
    ITEM_ENDED = "ended"          # Indeterminate item finished (display -> player)
    ITEM_ERROR = "error"          # Item failed to render (display -> player)


class Message:
    """Standard message format for IPC."""

    def __init__(
        self,
        msg_type: MessageType,
        data: Dict[str, Any],
        sender: str,
        timestamp: Optional[float] = None
    ):
        """
        Create a message.

        Args:
            msg_type: Type of message
            data: Message payload
            sender: Service name that sent the message
            timestamp: Unix timestamp (auto-generated if None)
        """
        self.msg_type = msg_type
        self.data = data
        self.sender = sender
        self.timestamp = timestamp or time.time()

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps({
            "type": self.msg_type.value,
            "data": self.data,
            "sender": self.sender,
            "timestamp": self.timestamp
        })

    @classmethod
    def from_json(cls, json_str: str) -> "Message":
        """Deserialize message from JSON string."""
        obj = json.loads(json_str)
        return cls(
            msg_type=MessageType(obj["type"]),
            data=obj.get("data") or {},
            sender=obj.get("sender", ""),
            timestamp=obj.get("timestamp")
        )

    def __repr__(self) -> str:
        """String representation."""
        return f"Message(type={self.msg_type.value}, sender={self.sender}, data={self.data})"


class MessagePublisher:
    """Publishes messages to subscribers (PUB socket)."""

    def __init__(self, port: int, service_name: str):
        """
        Initialize publisher.

        Args:
            port: Port to publish on
            service_name: Name of this service
        """
        self.port = port
        self.service_name = service_name
        self.context = zmq.Context()
        self.socket = self.context.socket(zmq.PUB)
        self.socket.bind(f"tcp://*:{port}")

        # Give subscribers time to connect
        time.sleep(0.1)

        logger.info("Publisher started: %s on port %d", service_name, port)

    def publish(self, msg_type: MessageType, data: Dict[str, Any]) -> None:
        """
        Publish a message.

        Args:
            msg_type: Type of message
            data: Message payload
        """
        message = Message(msg_type, data, self.service_name)

        # Send message type as topic, then message
        self.socket.send_string(f"{msg_type.value} {message.to_json()}")
        logger.debug("Published: %s", message)

    def close(self) -> None:
        """Close the publisher."""
        self.socket.close()
        self.context.term()
        logger.info("Publisher closed: %s", self.service_name)


class MessageSubscriber:
    """Subscribes to messages from publishers (SUB socket)."""

    def __init__(self, host: str, port: int, service_name: str):
        """
        Initialize subscriber.

        Args:
            host: Host to connect to (usually 'localhost')
            port: Port to connect to
            service_name: Name of this service
        """
        self.host = host
        self.port = port
        self.service_name = service_name
        self.context = zmq.Context()
        self.socket = self.context.socket(zmq.SUB)
        self.socket.connect(f"tcp://{host}:{port}")

        logger.info("Subscriber started: %s connected to %s:%d", service_name, host, port)

    def subscribe_to(self, msg_type: MessageType) -> None:
        """
        Subscribe to specific message type.

        Args:
            msg_type: Message type to subscribe to
        """
        self.socket.setsockopt_string(zmq.SUBSCRIBE, msg_type.value)
        logger.debug("Subscribed to: %s", msg_type.value)

    def receive(self, timeout_ms: int = 1000) -> Optional[Message]:
        """
        Receive a message (blocking with timeout).

        Args:
            timeout_ms: Timeout in milliseconds

        Returns:
            Message or None if timeout or undecodable
        """
        self.socket.setsockopt(zmq.RCVTIMEO, timeout_ms)

        try:
            raw_message = self.socket.recv_string()
        except zmq.Again:
            return None

        # Split topic and message
        parts = raw_message.split(' ', 1)
        if len(parts) != 2:
            logger.warning("Dropping malformed message: %r", raw_message[:80])
            return None

        try:
            message = Message.from_json(parts[1])
        except (ValueError, KeyError) as e:
            logger.error("Error decoding message: %s", e)
            return None

        logger.debug("Received: %s", message)
        return message

    def close(self) -> None:
        """Close the subscriber."""
        self.socket.close()
        self.context.term()
        logger.info("Subscriber closed: %s", self.service_name)
