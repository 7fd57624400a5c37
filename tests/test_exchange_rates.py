# tests/test_exchange_rates.py

"""Tests for the exchange-rate service."""

import unittest
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

from chempal.services.exchange_rates import ExchangeRateService

SESSION_PATH = "chempal.services.exchange_rates.curl_requests.AsyncSession"


def _rate_response(mid: float, status: int = 200) -> MagicMock:
    """Fake curl_cffi response carrying a hexarate payload."""
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = {"status_code": 200, "data": {"mid": mid}}
    return resp


def _session(*responses: Any) -> MagicMock:
    """Fake AsyncSession whose get() returns *responses* in turn."""
    session = MagicMock()
    session.get = AsyncMock(side_effect=list(responses))
    session.close = AsyncMock()
    return session


class TestExchangeRateService(unittest.IsolatedAsyncioTestCase):
    """Rate lookup, caching and failure handling."""

    async def test_same_currency_is_identity(self) -> None:
        """No request is made for identical currencies."""
        with patch(SESSION_PATH) as mock_cls:
            rate = await ExchangeRateService().get_rate("usd", "USD")
        self.assertEqual(rate, 1.0)
        mock_cls.assert_not_called()

    async def test_rate_fetched_and_cached(self) -> None:
        """A successful lookup is cached for later calls."""
        session = _session(_rate_response(0.25))
        with patch(SESSION_PATH, return_value=session):
            service = ExchangeRateService()
            self.assertEqual(await service.get_rate("PLN", "USD"), 0.25)
            self.assertEqual(await service.get_rate("pln", "usd"), 0.25)
        self.assertEqual(session.get.await_count, 1)
        url = session.get.await_args.args[0]
        self.assertIn("/latest/PLN", url)
        self.assertIn("target=USD", url)

    async def test_http_error_returns_none_uncached(self) -> None:
        """A failed lookup returns None and is retried next time."""
        session = _session(_rate_response(0.0, status=503), _rate_response(0.27))
        with patch(SESSION_PATH, return_value=session):
            service = ExchangeRateService()
            self.assertIsNone(await service.get_rate("PLN", "USD"))
            self.assertEqual(await service.get_rate("PLN", "USD"), 0.27)

    async def test_transport_error_returns_none(self) -> None:
        """Network exceptions never escape."""
        session = _session(ConnectionError("offline"))
        with patch(SESSION_PATH, return_value=session):
            self.assertIsNone(await ExchangeRateService().get_rate("EUR", "USD"))

    async def test_bad_payload_returns_none(self) -> None:
        """A payload without a mid rate is treated as a failure."""
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"error": "unknown currency"}
        with patch(SESSION_PATH, return_value=_session(resp)):
            self.assertIsNone(await ExchangeRateService().get_rate("XXX", "USD"))

    async def test_expired_rate_refetched(self) -> None:
        """An expired rate forces a fresh lookup."""
        session = _session(_rate_response(0.25), _rate_response(0.26))
        with patch(SESSION_PATH, return_value=session):
            service = ExchangeRateService(ttl=-1)
            await service.get_rate("PLN", "USD")
            self.assertEqual(await service.get_rate("PLN", "USD"), 0.26)

    async def test_convert_rounds(self) -> None:
        """convert() multiplies and rounds to cents."""
        with patch(SESSION_PATH, return_value=_session(_rate_response(0.2537))):
            service = ExchangeRateService()
            self.assertEqual(await service.convert(100, "PLN", "USD"), 25.37)

    async def test_close_closes_session(self) -> None:
        """close() releases the HTTP session."""
        session = _session(_rate_response(1.1))
        with patch(SESSION_PATH, return_value=session):
            service = ExchangeRateService()
            await service.get_rate("EUR", "USD")
            await service.close()
        session.close.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
