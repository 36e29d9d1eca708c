from __future__ import annotations

import unittest
from unittest import mock

from fintrack.core.errors import UpstreamServiceError
from fintrack.services.ai_client import create_chat_completion

PROVIDERS = [
    {"name": "groq", "base_url": "https://groq.test/v1", "model": "a", "api_key": "k1", "api_key_header": "Authorization", "api_key_prefix": "Bearer"},
    {"name": "openai", "base_url": "https://openai.test/v1", "model": "b", "api_key": "k2", "api_key_header": "Authorization", "api_key_prefix": "Bearer"},
]

OK = {"choices": [{"message": {"content": " hello "}}], "usage": {"total_tokens": 3}}


class ProviderChainTests(unittest.IsolatedAsyncioTestCase):
    def _patch(self, post):
        return (
            mock.patch("fintrack.services.ai_client.resolve_provider_chain", return_value=PROVIDERS),
            mock.patch("fintrack.services.ai_client._post_completion", post),
        )

    async def test_rate_limit_falls_back_to_next_provider(self):
        post = mock.AsyncMock(side_effect=[UpstreamServiceError(429, "rate limit", provider="groq"), OK])
        chain, client = self._patch(post)
        with chain, client:
            completion = await create_chat_completion([{"role": "user", "content": "hi"}], system_message="sys")
        self.assertEqual(completion.content, "hello")
        self.assertEqual(completion.provider, "openai")
        self.assertEqual(post.await_count, 2)
        payload = post.await_args.args[1]
        self.assertEqual(payload["messages"][0], {"role": "system", "content": "sys"})
        self.assertEqual(payload["model"], "b")

    async def test_no_fallback_when_disabled(self):
        post = mock.AsyncMock(side_effect=UpstreamServiceError(429, "rate limit", provider="groq"))
        chain, client = self._patch(post)
        with chain, client:
            with self.assertRaises(UpstreamServiceError) as ctx:
                await create_chat_completion([{"role": "user", "content": "hi"}], allow_fallback=False)
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertEqual(post.await_count, 1)

    async def test_auth_error_is_terminal(self):
        post = mock.AsyncMock(side_effect=[UpstreamServiceError(401, "invalid api key", provider="groq"), OK])
        chain, client = self._patch(post)
        with chain, client:
            with self.assertRaises(UpstreamServiceError):
                await create_chat_completion([{"role": "user", "content": "hi"}])
        self.assertEqual(post.await_count, 1)

    async def test_not_configured(self):
        with mock.patch("fintrack.services.ai_client.resolve_provider_chain", return_value=[]):
            with self.assertRaises(UpstreamServiceError) as ctx:
                await create_chat_completion([{"role": "user", "content": "hi"}])
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_empty_choices(self):
        chain, client = self._patch(mock.AsyncMock(return_value={"choices": []}))
        with chain, client:
            with self.assertRaises(UpstreamServiceError) as ctx:
                await create_chat_completion([{"role": "user", "content": "hi"}])
        self.assertEqual(ctx.exception.status_code, 502)


if __name__ == "__main__":
    unittest.main()
