"""Tests for the STOMP frame codec."""

import json

import pytest

from client_card_control.stomp import (
    Frame,
    StompError,
    connect_frame,
    escape_header,
    parse_frame,
    parse_frames,
    send_frame,
    subscribe_frame,
    unescape_header,
)


class TestHeaderEscaping:
    def test_escape(self):
        assert escape_header("a:b\nc\\") == "a\\cb\\nc\\\\"

    def test_unescape(self):
        assert unescape_header("a\\cb\\nc\\\\") == "a:b\nc\\"

    def test_undefined_escape(self):
        with pytest.raises(StompError):
            unescape_header("bad\\t")


class TestEncode:
    def test_send_frame(self):
        body = json.dumps({"sessionId": "s1"})
        wire = send_frame("/app/tensorflow/gesture.register", body).encode()
        assert wire.startswith("SEND\ndestination:/app/tensorflow/gesture.register\n")
        assert f"content-length:{len(body)}\n" in wire
        assert wire.endswith("\n\n" + body + "\x00")

    def test_connect_headers_not_escaped(self):
        wire = connect_frame("localhost:8080").encode()
        assert "host:localhost:8080\n" in wire
        assert "heart-beat:0,0\n" in wire

    def test_subscribe_frame(self):
        frame = subscribe_frame("/topic/game-updates", "sub-0")
        assert frame.headers["id"] == "sub-0"
        assert frame.destination == "/topic/game-updates"


class TestParse:
    def test_message_frame(self):
        wire = (
            "MESSAGE\n"
            "destination:/topic/gesture/s1\n"
            "subscription:sub-1\n"
            "message-id:7\n"
            "\n"
            '{"gesture":"higher"}\x00'
        )
        frame = parse_frame(wire)
        assert frame.command == "MESSAGE"
        assert frame.destination == "/topic/gesture/s1"
        assert json.loads(frame.body) == {"gesture": "higher"}

    def test_content_length_counts_bytes(self):
        body = '{"message":"Asséz"}'
        wire = f"MESSAGE\ncontent-length:{len(body.encode('utf-8'))}\n\n{body}trailing\x00"
        assert parse_frame(wire).body == body

    def test_first_repeated_header_wins(self):
        frame = parse_frame("MESSAGE\nfoo:1\nfoo:2\n\n\x00")
        assert frame.headers["foo"] == "1"

    def test_crlf_line_endings(self):
        frame = parse_frame("CONNECTED\r\nversion:1.2\r\n\r\n\x00")
        assert frame.command == "CONNECTED"
        assert frame.headers["version"] == "1.2"

    def test_unknown_command(self):
        with pytest.raises(StompError):
            parse_frame("HELLO\n\n\x00")

    def test_bad_header_line(self):
        with pytest.raises(StompError):
            parse_frame("MESSAGE\nnocolon\n\n\x00")

    def test_round_trip_escaped_header(self):
        original = Frame("MESSAGE", {"destination": "/topic/a:b"}, "x")
        assert parse_frame(original.encode()) == original


class TestParseFrames:
    def test_skips_heartbeats(self):
        data = "\n" + "RECEIPT\nreceipt-id:1\n\n\x00" + "\n\n" + "ERROR\nmessage:bad\n\nboom\x00"
        frames = parse_frames(data)
        assert [f.command for f in frames] == ["RECEIPT", "ERROR"]
        assert frames[1].body == "boom"

    def test_only_heartbeat(self):
        assert parse_frames("\n") == []
