import unittest

from app.identity import IdentityIssuer


class TestIdentityIssuer(unittest.TestCase):
    def test_default_tokens_are_url_safe_and_distinct(self):
        issuer = IdentityIssuer()
        identities = [issuer.issue() for _ in range(50)]
        tokens = [i.key for i in identities] + [i.secret for i in identities]
        self.assertEqual(len(set(tokens)), 100)
        allowed = set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")
        for token in tokens:
            self.assertTrue(set(token) <= allowed)
        # 16 bytes -> 22 chars, 32 bytes -> 43 chars
        self.assertEqual(len(identities[0].key), 22)
        self.assertEqual(len(identities[0].secret), 43)

    def test_injected_source_draws_key_and_secret_separately(self):
        calls = []

        def source(nbytes):
            calls.append(nbytes)
            return f"tok{len(calls)}"

        issuer = IdentityIssuer(key_bytes=16, secret_bytes=24, token_source=source)
        identity = issuer.issue()
        self.assertEqual(identity.key, "tok1")
        self.assertEqual(identity.secret, "tok2")
        self.assertEqual(calls, [16, 24])

    def test_redraws_secret_equal_to_key(self):
        tokens = iter(["same", "same", "other"])
        issuer = IdentityIssuer(token_source=lambda n: next(tokens))
        identity = issuer.issue()
        self.assertEqual((identity.key, identity.secret), ("same", "other"))

    def test_rejects_low_entropy(self):
        with self.assertRaises(ValueError):
            IdentityIssuer(key_bytes=8)
        with self.assertRaises(ValueError):
            IdentityIssuer(secret_bytes=4)


if __name__ == "__main__":
    unittest.main()
