import hashlib
import json
import secrets
import struct
import unittest.mock

import asab

import passkeysdemo  # noqa: F401 (registers config defaults)
from passkeysdemo.generic import base64url_encode, base64url_decode
from passkeysdemo.authn.operation import CompleteCreateRequest, AssertionRequest
from passkeysdemo.authn.result import Result, AuthError
from passkeysdemo.credentials import CredentialsService
from passkeysdemo.credentials.providers.dictionary import DictCredentialsProvider
from passkeysdemo.session import SessionService, BearerTokenService
from passkeysdemo.authn import AuthenticationService
from passkeysdemo.account import AccountService


RP_ID = "localhost"


class FakeAuthenticator(object):
	"""
	Deterministic stand-in for a platform authenticator.

	The "key pair" is a single secret shared with FakeVerifier through the stored public key,
	so signatures can be checked without real cryptography.
	"""

	def __init__(self, credential_id=None):
		self.CredentialId = credential_id or secrets.token_bytes(16)
		self.Key = secrets.token_bytes(32)
		self.Counter = 0

	def create(self, challenge: bytes) -> CompleteCreateRequest:
		client_data_json = json.dumps({
			"type": "webauthn.create",
			"challenge": base64url_encode(challenge),
		}).encode("utf-8")
		attestation_object = json.dumps({
			"credentialId": base64url_encode(self.CredentialId),
			"publicKey": base64url_encode(self.Key),
			"signCount": self.Counter,
		}).encode("utf-8")
		return CompleteCreateRequest(ClientDataJSON=client_data_json, AttestationObject=attestation_object)

	def assertion(self, challenge: bytes, increment=1) -> AssertionRequest:
		self.Counter += increment
		client_data_json = json.dumps({
			"type": "webauthn.get",
			"challenge": base64url_encode(challenge),
		}).encode("utf-8")
		authenticator_data = hashlib.sha256(RP_ID.encode("utf-8")).digest() + b"\x05" + struct.pack(">I", self.Counter)
		return AssertionRequest(
			ClientDataJSON=client_data_json,
			AuthenticatorData=authenticator_data,
			Signature=sign(self.Key, authenticator_data, client_data_json),
			CredentialId=self.CredentialId,
		)


def sign(key, authenticator_data, client_data_json):
	return hashlib.sha256(key + authenticator_data + client_data_json).digest()


class FakeVerifier(object):
	"""
	Implements the verifier interface of WebAuthnService for FakeAuthenticator.

	It checks the challenge, the signature and that the signature counter increases.
	"""

	RelyingPartyId = RP_ID
	AllowZeroSignCount = False

	def __init__(self):
		self.AssertionCalls = 0

	def generate_challenge(self) -> bytes:
		return secrets.token_bytes(32)

	def registration_options(self, challenge, user_id, display_name):
		return {
			"rp": {"id": self.RelyingPartyId},
			"user": {"id": base64url_encode(user_id.encode("utf-8")), "name": user_id, "displayName": display_name},
			"challenge": base64url_encode(challenge),
		}

	def authentication_options(self, challenge, allow_credentials=()):
		return {
			"rpId": self.RelyingPartyId,
			"challenge": base64url_encode(challenge),
			"allowCredentials": [{"id": base64url_encode(c), "type": "public-key"} for c in allow_credentials],
		}

	async def process_attestation(self, client_data_json, attestation_object, expected_challenge):
		try:
			client_data = json.loads(client_data_json)
			attestation = json.loads(attestation_object)
			if client_data["type"] != "webauthn.create":
				raise ValueError("Wrong client data type")
			if not secrets.compare_digest(base64url_decode(client_data["challenge"]), expected_challenge):
				raise ValueError("Challenge mismatch")
			return Result.success((
				base64url_decode(attestation["credentialId"]),
				base64url_decode(attestation["publicKey"]),
				int(attestation["signCount"]),
			))
		except Exception as e:
			return Result.failure(AuthError.VerificationFailed, str(e))

	async def process_assertion(
		self, client_data_json, authenticator_data, signature, credential_id,
		public_key, expected_challenge, sign_count
	):
		self.AssertionCalls += 1
		try:
			client_data = json.loads(client_data_json)
			if client_data["type"] != "webauthn.get":
				raise ValueError("Wrong client data type")
			if not secrets.compare_digest(base64url_decode(client_data["challenge"]), expected_challenge):
				raise ValueError("Challenge mismatch")
			if not secrets.compare_digest(sign(public_key, authenticator_data, client_data_json), signature):
				raise ValueError("Invalid signature")
			new_sign_count, = struct.unpack(">I", authenticator_data[33:37])
			if new_sign_count <= sign_count and not (self.AllowZeroSignCount and new_sign_count == 0 and sign_count == 0):
				raise ValueError("Signature counter did not increase")
			return Result.success(new_sign_count)
		except Exception as e:
			return Result.failure(AuthError.VerificationFailed, str(e))


def make_app():
	"""
	Application mock with the real services wired to the in-memory store and FakeVerifier.
	"""
	services = {}
	app = unittest.mock.MagicMock()
	app.get_service.side_effect = lambda name: services[name]
	services["asab.MetricsService"] = unittest.mock.MagicMock()

	services["passkeysdemo.CredentialsService"] = CredentialsService(app, provider=DictCredentialsProvider(app))
	services["passkeysdemo.SessionService"] = SessionService(app)
	services["passkeysdemo.BearerTokenService"] = BearerTokenService(app)
	services["passkeysdemo.WebAuthnService"] = FakeVerifier()
	services["passkeysdemo.AuthenticationService"] = AuthenticationService(app)
	services["passkeysdemo.AccountService"] = AccountService(app)

	app.Services = services
	return app


class ConfigOverride(object):
	"""
	Temporarily change asab.Config options, e.g. `with ConfigOverride("passkeysdemo:stepup", require="update"):`
	"""

	def __init__(self, section, **options):
		self.Section = section
		self.Options = options
		self.Previous = {}

	def __enter__(self):
		for option, value in self.Options.items():
			self.Previous[option] = asab.Config.get(self.Section, option)
			asab.Config.set(self.Section, option, value)
		return self

	def __exit__(self, exc_type, exc_value, traceback):
		for option, value in self.Previous.items():
			asab.Config.set(self.Section, option, value)
