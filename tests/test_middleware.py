"""
Tests for request logging middleware and rate limit header helpers.
"""

import unittest
import uuid

from fastapi import Request, Response
from fastapi.testclient import TestClient
from fakes import FakeAdventureGenerator

from app.middleware.rate_limit import (
    apply_rate_limit_headers,
    build_rate_limit_context,
    get_client_ip,
)
from daggergm.config import LoggingSettings, Settings
from daggergm.errors import ValidationError
from daggergm.ratelimit import RateLimitContext, RateLimiter, RateLimitOperation


def make_request(headers=None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or {}).items()
        ],
    }
    return Request(scope)


class TestGetClientIp(unittest.TestCase):
    def test_first_forwarded_entry_wins(self):
        request = make_request({
            "X-Forwarded-For": "203.0.113.7, 10.0.0.1",
            "X-Real-IP": "198.51.100.2",
        })
        self.assertEqual(get_client_ip(request), "203.0.113.7")

    def test_real_ip_then_cloudflare(self):
        self.assertEqual(get_client_ip(make_request({"X-Real-IP": "198.51.100.2"})), "198.51.100.2")
        self.assertEqual(
            get_client_ip(make_request({"CF-Connecting-IP": "192.0.2.9"})),
            "192.0.2.9",
        )

    def test_fallback_when_no_headers(self):
        self.assertEqual(get_client_ip(make_request()), "127.0.0.1")
        self.assertEqual(get_client_ip(make_request(), fallback="0.0.0.0"), "0.0.0.0")

    def test_blank_forwarded_header_is_skipped(self):
        request = make_request({"X-Forwarded-For": " ", "X-Real-IP": "198.51.100.2"})
        self.assertEqual(get_client_ip(request), "198.51.100.2")


class TestBuildRateLimitContext(unittest.TestCase):
    def test_authenticated_caller(self):
        user_id = str(uuid.uuid4())
        request = make_request({"X-User-ID": user_id.upper(), "X-Real-IP": "198.51.100.2"})

        context = build_rate_limit_context(request)

        self.assertEqual(context.user_id, user_id)
        self.assertEqual(context.identity, f"user:{user_id}")
        self.assertEqual(request.state.user_id, user_id)

    def test_guest_caller(self):
        context = build_rate_limit_context(make_request({"X-Real-IP": "198.51.100.2"}))

        self.assertFalse(context.is_authenticated)
        self.assertEqual(context.identity, "ip:198.51.100.2")

    def test_malformed_user_id(self):
        with self.assertRaises(ValidationError):
            build_rate_limit_context(make_request({"X-User-ID": "not-a-uuid"}))


class TestApplyRateLimitHeaders(unittest.IsolatedAsyncioTestCase):
    async def test_headers_do_not_consume_allowance(self):
        limiter = RateLimiter()
        context = RateLimitContext(ip_address="10.0.0.1")
        response = Response()

        await apply_rate_limit_headers(response, limiter, RateLimitOperation.EXPORT, context)
        await apply_rate_limit_headers(response, limiter, RateLimitOperation.EXPORT, context)

        self.assertEqual(response.headers["X-RateLimit-Limit"], "3")
        self.assertEqual(response.headers["X-RateLimit-Remaining"], "3")
        self.assertTrue(response.headers["X-RateLimit-Reset"].isdigit())


class TestRequestLoggingMiddleware(unittest.TestCase):
    def setUp(self):
        from server import create_app

        settings = Settings(logging=LoggingSettings(request_logging_enabled=True))
        self.client = TestClient(create_app(settings, generator=FakeAdventureGenerator()))

    def test_response_has_request_id(self):
        response = self.client.get("/health")
        self.assertIn("x-request-id", response.headers)
        uuid.UUID(response.headers["x-request-id"])

    def test_forwarded_request_id_is_used(self):
        response = self.client.get("/health", headers={"X-Request-ID": "custom-request-123"})
        self.assertEqual(response.headers["x-request-id"], "custom-request-123")

    def test_unique_request_ids(self):
        first = self.client.get("/health").headers["x-request-id"]
        second = self.client.get("/health").headers["x-request-id"]
        self.assertNotEqual(first, second)

    def test_response_has_timing_header(self):
        response = self.client.get("/")
        self.assertTrue(response.headers["x-response-time"].endswith("ms"))

    def test_failed_requests_are_logged_as_warnings(self):
        with self.assertLogs("app.middleware.logging", level="WARNING") as logs:
            response = self.client.get("/api/credits/balance")

        self.assertEqual(response.status_code, 401)
        self.assertIn("GET /api/credits/balance 401", logs.output[0])
