import threading

from django.test import SimpleTestCase

from core.payment_gateway import GatewayAuthError, TokenCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TokenCacheTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.calls = 0

    def fetcher(self, expires_in=300):
        def fetch():
            self.calls += 1
            return {"access_token": f"token-{self.calls}", "expires_in": expires_in}

        return fetch

    def test_first_get_fetches_token(self):
        cache = TokenCache(self.fetcher(), safety_margin=60, clock=self.clock)
        self.assertEqual(cache.get(), "token-1")
        self.assertEqual(self.calls, 1)

    def test_cached_token_reused_outside_safety_margin(self):
        cache = TokenCache(self.fetcher(expires_in=300), safety_margin=60, clock=self.clock)
        cache.get()
        self.clock.now += 200
        self.assertEqual(cache.get(), "token-1")
        self.assertEqual(self.calls, 1)

    def test_token_inside_safety_margin_is_refreshed(self):
        cache = TokenCache(self.fetcher(expires_in=300), safety_margin=60, clock=self.clock)
        cache.get()
        # 50s left, below the 60s margin
        self.clock.now += 250
        self.assertEqual(cache.get(), "token-2")
        self.assertEqual(self.calls, 2)

    def test_missing_expires_in_defaults_to_one_hour(self):
        cache = TokenCache(lambda: {"access_token": "abc"}, safety_margin=60, clock=self.clock)
        cache.get()
        self.clock.now += 3500
        self.assertEqual(cache.get(), "abc")

    def test_response_without_access_token_raises(self):
        cache = TokenCache(lambda: {"expires_in": 300}, clock=self.clock)
        with self.assertRaises(GatewayAuthError):
            cache.get()

    def test_refresh_always_fetches(self):
        cache = TokenCache(self.fetcher(), clock=self.clock)
        cache.get()
        self.assertEqual(cache.refresh(), "token-2")

    def test_concurrent_gets_return_valid_tokens(self):
        cache = TokenCache(self.fetcher(expires_in=3600), safety_margin=60)
        results = []
        lock = threading.Lock()

        def worker():
            token = cache.get()
            with lock:
                results.append(token)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(results), 10)
        self.assertTrue(all(token.startswith("token-") for token in results))
        calls_before = self.calls
        cache.get()
        self.assertEqual(self.calls, calls_before)
