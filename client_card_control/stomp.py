"""
STOMP 1.2 frame codec.

The card game backend exposes a STOMP message broker over WebSocket. Each
WebSocket text message carries one or more NUL-terminated frames:

    COMMAND\\n
    header:value\\n
    ...\\n
    \\n
    body\\0

Heart-beats are bare newlines between frames and are skipped on parse.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

NULL = "\x00"
EOL = "\n"

CLIENT_COMMANDS = (
    "CONNECT", "STOMP", "SEND", "SUBSCRIBE", "UNSUBSCRIBE",
    "ACK", "NACK", "BEGIN", "COMMIT", "ABORT", "DISCONNECT",
)
SERVER_COMMANDS = ("CONNECTED", "MESSAGE", "RECEIPT", "ERROR")

# Header escaping does not apply to CONNECT / CONNECTED frames
_UNESCAPED_COMMANDS = ("CONNECT", "CONNECTED")

_ESCAPES = (("\\", "\\\\"), ("\r", "\\r"), ("\n", "\\n"), (":", "\\c"))
_UNESCAPES = {"\\\\": "\\", "\\r": "\r", "\\n": "\n", "\\c": ":"}


class StompError(ValueError):
    """Frame could not be parsed."""


def escape_header(value: str) -> str:
    for raw, escaped in _ESCAPES:
        value = value.replace(raw, escaped)
    return value


def unescape_header(value: str) -> str:
    out = []
    i = 0
    while i < len(value):
        if value[i] == "\\":
            seq = value[i:i + 2]
            if seq not in _UNESCAPES:
                raise StompError(f"Undefined escape sequence: {seq!r}")
            out.append(_UNESCAPES[seq])
            i += 2
        else:
            out.append(value[i])
            i += 1
    return "".join(out)


@dataclass
class Frame:
    command: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def encode(self) -> str:
        """Serialize to wire text, including the trailing NUL."""
        escape = self.command not in _UNESCAPED_COMMANDS
        lines = [self.command]
        for key, value in self.headers.items():
            if escape:
                key, value = escape_header(key), escape_header(str(value))
            lines.append(f"{key}:{value}")
        return EOL.join(lines) + EOL + EOL + self.body + NULL

    @property
    def destination(self) -> Optional[str]:
        return self.headers.get("destination")


def parse_frame(text: str) -> Frame:
    """Parse a single frame (with or without the trailing NUL)."""
    text = text.lstrip("\r\n")
    if text.endswith(NULL):
        text = text[:-1]

    head, sep, body = text.partition(EOL + EOL)
    if not sep:
        head, sep, body = text.partition("\r\n\r\n")
    if not head:
        raise StompError("Empty frame")

    lines = head.replace("\r\n", EOL).split(EOL)
    command = lines[0].strip()
    if command not in CLIENT_COMMANDS + SERVER_COMMANDS:
        raise StompError(f"Unknown command: {command!r}")

    escaped = command not in _UNESCAPED_COMMANDS
    headers: Dict[str, str] = {}
    for line in lines[1:]:
        if not line:
            continue
        key, colon, value = line.partition(":")
        if not colon:
            raise StompError(f"Malformed header line: {line!r}")
        if escaped:
            key, value = unescape_header(key), unescape_header(value)
        # Repeated headers: the first occurrence wins
        headers.setdefault(key, value)

    if "content-length" in headers:
        try:
            length = int(headers["content-length"])
        except ValueError:
            raise StompError(f"Bad content-length: {headers['content-length']!r}") from None
        encoded = body.encode("utf-8")
        body = encoded[:length].decode("utf-8", errors="replace")

    return Frame(command=command, headers=headers, body=body)


def parse_frames(data: str) -> List[Frame]:
    """Split a WebSocket message into frames, skipping heart-beats."""
    frames = []
    for chunk in data.split(NULL):
        if chunk.strip("\r\n"):
            frames.append(parse_frame(chunk))
    return frames


# ============================================================================
# Client Frame Builders
# ============================================================================

def connect_frame(host: str, heartbeat: str = "0,0", **extra: str) -> Frame:
    headers = {"accept-version": "1.2,1.1,1.0", "host": host, "heart-beat": heartbeat}
    headers.update(extra)
    return Frame("CONNECT", headers)


def subscribe_frame(destination: str, sub_id: str) -> Frame:
    return Frame("SUBSCRIBE", {"id": sub_id, "destination": destination, "ack": "auto"})


def unsubscribe_frame(sub_id: str) -> Frame:
    return Frame("UNSUBSCRIBE", {"id": sub_id})


def send_frame(destination: str, body: str, content_type: str = "application/json") -> Frame:
    return Frame(
        "SEND",
        {
            "destination": destination,
            "content-type": content_type,
            "content-length": str(len(body.encode("utf-8"))),
        },
        body,
    )


def disconnect_frame() -> Frame:
    return Frame("DISCONNECT", {})
