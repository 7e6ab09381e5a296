import unittest
import json
import sys
import os

# Add the parent directory to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from url_relay.errors import InvalidTargetURL
from url_relay.models import BufferedText, Headers, InboundRequest, RelayResponse, StreamBody


class TestHeaders(unittest.TestCase):
    """Test cases for the ordered header multiset."""

    def test_lookup_is_case_insensitive(self):
        # Arrange
        headers = Headers([("Content-Type", "text/html")])

        # Act and Assert
        self.assertEqual(headers.get("content-type"), "text/html")
        self.assertIn("CONTENT-TYPE", headers)
        self.assertNotIn("Location", headers)

    def test_duplicates_preserved(self):
        """Test repeated Set-Cookie entries are not collapsed."""
        # Arrange
        headers = Headers()

        # Act
        headers.add("Set-Cookie", "a=1")
        headers.add("Set-Cookie", "b=2")

        # Assert
        self.assertEqual(headers.get_all("set-cookie"), ["a=1", "b=2"])
        self.assertEqual(len(headers), 2)

    def test_set_replaces_in_place(self):
        """Test set keeps the first occurrence's position and drops the rest."""
        # Arrange
        headers = Headers([("A", "1"), ("Location", "/x"), ("B", "2"), ("location", "/y")])

        # Act
        headers.set("Location", "/z")

        # Assert
        self.assertEqual(headers.items(), [("A", "1"), ("Location", "/z"), ("B", "2")])

    def test_remove(self):
        # Arrange
        headers = Headers([("A", "1"), ("a", "2"), ("B", "3")])

        # Act
        headers.remove("A")

        # Assert
        self.assertEqual(headers.items(), [("B", "3")])


class TestInboundRequest(unittest.TestCase):
    """Test cases for parsing the request head."""

    def test_request_parsing(self):
        """Test HTTP request parsing."""
        # Arrange
        head = (
            "GET /example.com/a?x=1 HTTP/1.1\r\n"
            "Host: relay.test:8080\r\n"
            "User-Agent: Mozilla/5.0\r\n"
            "Cookie: a=1\r\n"
            "Cookie: b=2"
        )

        # Act
        result = InboundRequest.from_head(head)

        # Assert
        self.assertEqual(result.method, "GET")
        self.assertEqual(result.path, "/example.com/a")
        self.assertEqual(result.query, "?x=1")
        self.assertEqual(result.scheme, "http")
        self.assertEqual(result.host, "relay.test:8080")
        self.assertEqual(result.headers.get_all("Cookie"), ["a=1", "b=2"])

    def test_forwarded_proto_sets_scheme(self):
        """Test a TLS-terminating front end can report the caller's scheme."""
        # Arrange
        head = "GET /example.com HTTP/1.1\r\nHost: relay.test\r\nX-Forwarded-Proto: HTTPS, http"

        # Act
        result = InboundRequest.from_head(head)

        # Assert
        self.assertEqual(result.scheme, "https")

    def test_unknown_forwarded_proto_ignored(self):
        """Test only http and https are taken from X-Forwarded-Proto."""
        for proto in ("javascript", "ftp", ""):
            with self.subTest(proto=proto):
                # Arrange
                head = f"GET /https://example.com HTTP/1.1\r\nHost: relay.test\r\nX-Forwarded-Proto: {proto}"

                # Act
                result = InboundRequest.from_head(head, default_scheme="https")

                # Assert
                self.assertEqual(result.scheme, "https")

    def test_defaults_without_host(self):
        # Act
        result = InboundRequest.from_head("GET / HTTP/1.0", default_host="127.0.0.1:9000")

        # Assert
        self.assertEqual(result.host, "127.0.0.1:9000")
        self.assertEqual(result.query, "")

    def test_bare_question_mark_gives_empty_query(self):
        # Act
        result = InboundRequest.from_head("GET /example.com? HTTP/1.1")

        # Assert
        self.assertEqual(result.path, "/example.com")
        self.assertEqual(result.query, "")

    def test_absolute_form_target(self):
        """Test absolute-form request targets are reduced to path and query."""
        # Act
        result = InboundRequest.from_head("GET http://relay.test/example.com/a?q=2 HTTP/1.1")

        # Assert
        self.assertEqual(result.path, "/example.com/a")
        self.assertEqual(result.query, "?q=2")

    def test_malformed_request_line(self):
        # Act and Assert
        with self.assertRaises(ValueError):
            InboundRequest.from_head("GARBAGE")

    def test_malformed_header_line(self):
        # Act and Assert
        with self.assertRaises(ValueError):
            InboundRequest.from_head("GET / HTTP/1.1\r\nno colon here")


class TestRelayResponse(unittest.TestCase):
    """Test cases for response serialization."""

    def test_error_response(self):
        """Test error envelope creation."""
        # Act
        response = RelayResponse.error_envelope(InvalidTargetURL("Invalid URL: 'http://'"))
        head = response.to_head().decode("latin-1")
        body = b"".join(response.iter_body())

        # Assert
        self.assertEqual(response.status_code, 500)
        self.assertIn("HTTP/1.1 500 Internal Server Error", head)
        self.assertIn("Content-Type: application/json; charset=utf-8", head)
        self.assertIn(f"Content-Length: {len(body)}", head)
        self.assertEqual(json.loads(body), {"error": "Invalid URL: 'http://'"})

    def test_error_message_never_empty(self):
        # Act
        response = RelayResponse.error_envelope(RuntimeError())
        payload = json.loads(b"".join(response.iter_body()))

        # Assert
        self.assertEqual(list(payload), ["error"])
        self.assertEqual(payload["error"], "RuntimeError")

    def test_head_strips_hop_by_hop_and_frames_body(self):
        """Test connection-level headers are replaced by the relay's own framing."""
        # Arrange
        response = RelayResponse(
            status_code=200,
            reason="OK",
            headers=Headers([
                ("Transfer-Encoding", "chunked"),
                ("Connection", "keep-alive"),
                ("Set-Cookie", "a=1"),
                ("Set-Cookie", "b=2"),
            ]),
            body=StreamBody([b"abc"]),
        )

        # Act
        head = response.to_head().decode("latin-1")

        # Assert
        self.assertNotIn("Transfer-Encoding", head)
        self.assertNotIn("keep-alive", head)
        self.assertNotIn("Content-Length", head)
        self.assertIn("Set-Cookie: a=1\r\nSet-Cookie: b=2\r\n", head)
        self.assertTrue(head.endswith("Connection: close\r\n\r\n"))

    def test_stream_body_keeps_declared_length(self):
        # Arrange
        response = RelayResponse(200, "OK", Headers([("Content-Length", "3")]), StreamBody([b"abc"]))

        # Act and Assert
        self.assertEqual(response.content_length(), 3)

    def test_buffered_text_reencoded_with_charset(self):
        """Test text bodies go out in the charset they came in with."""
        # Arrange
        body = BufferedText("café", "iso-8859-1")

        # Act and Assert
        self.assertEqual(body.encode(), b"caf\xe9")

    def test_stream_body_close_hook(self):
        # Arrange
        closed = []
        body = StreamBody(iter([b"a", b"", b"b"]), on_close=lambda: closed.append(True))

        # Act
        chunks = list(body)
        body.close()

        # Assert
        self.assertEqual(chunks, [b"a", b"b"])
        self.assertEqual(closed, [True])


if __name__ == '__main__':
    unittest.main()
