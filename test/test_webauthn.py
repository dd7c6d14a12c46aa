import asyncio
import unittest
import unittest.mock

from passkeysdemo.authn.result import Result, AuthError
from passkeysdemo.authn.webauthn import WebAuthnService
from passkeysdemo.generic import base64url_encode

from fakes import ConfigOverride


def _inline_proactor():
	"""
	Proactor that runs the worker on the event loop thread
	"""
	proactor = unittest.mock.MagicMock()
	proactor.execute = unittest.mock.AsyncMock(side_effect=lambda worker, *args: worker(*args))
	return proactor


def _app(proactor=None):
	app = unittest.mock.MagicMock()
	proactor = proactor or _inline_proactor()
	app.get_service.side_effect = lambda name: {"asab.ProactorService": proactor}[name]
	return app


class ConfigTestCase(unittest.TestCase):

	def test_defaults(self):
		svc = WebAuthnService(_app())
		self.assertEqual(svc.RelyingPartyId, "localhost")
		self.assertEqual(svc.Origins, ["http://localhost:8080"])
		self.assertEqual(svc.ChallengeTimeout, 60000)
		self.assertFalse(svc.AllowZeroSignCount)


	def test_relying_party_id_from_origin(self):
		with ConfigOverride("passkeysdemo:webauthn", origin="https://auth.example.com https://example.com"):
			svc = WebAuthnService(_app())
		self.assertEqual(svc.RelyingPartyId, "auth.example.com")
		self.assertEqual(len(svc.Origins), 2)


	def test_explicit_relying_party_id(self):
		with ConfigOverride("passkeysdemo:webauthn", origin="https://auth.example.com", relying_party_id="example.com"):
			svc = WebAuthnService(_app())
		self.assertEqual(svc.RelyingPartyId, "example.com")


	def test_invalid_config(self):
		with ConfigOverride("passkeysdemo:webauthn", origin=""):
			with self.assertRaises(ValueError):
				WebAuthnService(_app())
		with ConfigOverride("passkeysdemo:webauthn", attestation="always"):
			with self.assertRaises(ValueError):
				WebAuthnService(_app())


class OptionsTestCase(unittest.TestCase):
	maxDiff = None

	def setUp(self):
		self.Service = WebAuthnService(_app())
		self.Challenge = self.Service.generate_challenge()


	def test_challenge(self):
		self.assertEqual(len(self.Challenge), 32)
		self.assertNotEqual(self.Challenge, self.Service.generate_challenge())


	def test_registration_options(self):
		options = self.Service.registration_options(self.Challenge, "alice", "Alice A")
		self.assertEqual(options["challenge"], base64url_encode(self.Challenge))
		self.assertEqual(options["rp"]["id"], "localhost")
		self.assertEqual(options["user"]["id"], base64url_encode(b"alice"))
		self.assertEqual(options["user"]["name"], "alice")
		self.assertEqual(options["user"]["displayName"], "Alice A")
		self.assertEqual(options["timeout"], 60000)
		self.assertEqual(options["attestation"], "none")
		self.assertEqual(sorted(p["alg"] for p in options["pubKeyCredParams"]), [-257, -7])


	def test_authentication_options(self):
		options = self.Service.authentication_options(self.Challenge, [b"cred-alice"])
		self.assertEqual(options["challenge"], base64url_encode(self.Challenge))
		self.assertEqual(options["rpId"], "localhost")
		self.assertEqual(
			[c["id"] for c in options["allowCredentials"]],
			[base64url_encode(b"cred-alice")]
		)

		options = self.Service.authentication_options(self.Challenge)
		self.assertEqual(options.get("allowCredentials", []), [])


class VerificationTestCase(unittest.IsolatedAsyncioTestCase):
	maxDiff = None

	def setUp(self):
		self.Service = WebAuthnService(_app())


	async def test_garbage_attestation(self):
		result = await self.Service.process_attestation(b"{}", b"garbage", b"x" * 32)
		self.assertEqual(result.Error, AuthError.VerificationFailed)


	async def test_garbage_assertion(self):
		result = await self.Service.process_assertion(
			b"{}", b"\x00" * 37, b"\x01" * 64, b"cred-alice", b"not a key", b"x" * 32, 0)
		self.assertEqual(result.Error, AuthError.VerificationFailed)


	async def test_timeout(self):
		never = asyncio.get_running_loop().create_future()
		proactor = unittest.mock.MagicMock()
		proactor.execute.return_value = never
		svc = WebAuthnService(_app(proactor))
		svc.VerificationTimeout = 0.05

		result = await svc.process_attestation(b"{}", b"\xa0", b"x" * 32)
		self.assertEqual(result.Error, AuthError.VerificationFailed)
		self.assertEqual(result.Detail, "Verification timed out")


	async def assertion_result(self, stored_sign_count, new_sign_count):
		with unittest.mock.patch.object(
			self.Service, "_run_verification",
			unittest.mock.AsyncMock(return_value=Result.success(new_sign_count))
		):
			return await self.Service.process_assertion(
				b"{}", b"\x00" * 37, b"\x01" * 64, b"cred-alice", b"pk", b"x" * 32, stored_sign_count)


	async def test_sign_count_must_increase(self):
		self.assertTrue((await self.assertion_result(5, 6)).ok)
		self.assertEqual((await self.assertion_result(5, 6)).Value, 6)
		self.assertEqual((await self.assertion_result(5, 5)).Error, AuthError.VerificationFailed)
		self.assertEqual((await self.assertion_result(5, 4)).Error, AuthError.VerificationFailed)


	async def test_zero_sign_count(self):
		self.assertEqual((await self.assertion_result(0, 0)).Error, AuthError.VerificationFailed)

		self.Service.AllowZeroSignCount = True
		self.assertTrue((await self.assertion_result(0, 0)).ok)
		# A counter that went up once must keep going up
		self.assertEqual((await self.assertion_result(3, 0)).Error, AuthError.VerificationFailed)


	async def test_failure_passes_through(self):
		with unittest.mock.patch.object(
			self.Service, "_run_verification",
			unittest.mock.AsyncMock(return_value=Result.failure(AuthError.VerificationFailed, "Invalid signature"))
		):
			result = await self.Service.process_assertion(
				b"{}", b"\x00" * 37, b"\x01" * 64, b"cred-alice", b"pk", b"x" * 32, 0)
		self.assertEqual(result.Detail, "Invalid signature")
