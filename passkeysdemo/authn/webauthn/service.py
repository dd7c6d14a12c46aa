import asyncio
import json
import logging
import secrets
import typing
import urllib.parse

import asab
import webauthn
import webauthn.helpers
import webauthn.helpers.structs

from ..result import Result, AuthError
from ...generic import base64url_encode

#

L = logging.getLogger(__name__)

#


class WebAuthnService(asab.Service):
	"""
	Relying party side of the WebAuthn ceremonies.

	Builds the options for the platform authenticator and verifies attestations and assertions.
	Verification runs in the proactor thread pool under a timeout. Every failure,
	the timeout included, is reported as VerificationFailed.
	"""

	ChallengeLength = 32

	def __init__(self, app, service_name="passkeysdemo.WebAuthnService"):
		super().__init__(app, service_name)
		self.ProactorService = app.get_service("asab.ProactorService")

		self.RelyingPartyName = asab.Config.get("passkeysdemo:webauthn", "relying_party_name")

		self.Origins = asab.Config.get("passkeysdemo:webauthn", "origin").split()
		if len(self.Origins) == 0:
			raise ValueError("At least one WebAuthn 'origin' must be configured")

		# RP ID must match host's domain name (without scheme, port or subpath)
		# https://www.w3.org/TR/webauthn-2/#relying-party-identifier
		self.RelyingPartyId = asab.Config.get("passkeysdemo:webauthn", "relying_party_id")
		if len(self.RelyingPartyId) == 0:
			self.RelyingPartyId = str(urllib.parse.urlparse(self.Origins[0]).hostname)

		self.AttestationPreference = asab.Config.get("passkeysdemo:webauthn", "attestation")
		if self.AttestationPreference not in {"none", "direct", "indirect", "enterprise"}:
			raise ValueError("Unsupported WebAuthn 'attestation' value: {!r}".format(self.AttestationPreference))

		# In milliseconds, as the authenticator expects it
		self.ChallengeTimeout = int(asab.Config.getseconds("passkeysdemo:webauthn", "challenge_timeout") * 1000)
		self.VerificationTimeout = asab.Config.getseconds("passkeysdemo:webauthn", "verification_timeout")
		self.AllowZeroSignCount = asab.Config.getboolean("passkeysdemo:webauthn", "allow_zero_sign_count")

		self.SupportedAlgorithms = [
			webauthn.helpers.structs.COSEAlgorithmIdentifier.ECDSA_SHA_256,
			webauthn.helpers.structs.COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
		]


	def generate_challenge(self) -> bytes:
		return secrets.token_bytes(self.ChallengeLength)


	def registration_options(self, challenge: bytes, user_id: str, display_name: str) -> dict:
		"""
		WebAuthn registration options

		https://www.w3.org/TR/webauthn/#dictdef-publickeycredentialcreationoptions
		"""
		options = webauthn.generate_registration_options(
			rp_id=self.RelyingPartyId,
			rp_name=self.RelyingPartyName,
			user_id=user_id.encode("utf-8"),
			user_name=user_id,
			user_display_name=display_name,
			challenge=challenge,
			timeout=self.ChallengeTimeout,
			attestation=webauthn.helpers.structs.AttestationConveyancePreference(self.AttestationPreference),
			authenticator_selection=webauthn.helpers.structs.AuthenticatorSelectionCriteria(
				resident_key=webauthn.helpers.structs.ResidentKeyRequirement.PREFERRED,
				user_verification=webauthn.helpers.structs.UserVerificationRequirement.PREFERRED,
			),
			supported_pub_key_algs=self.SupportedAlgorithms,
		)
		return json.loads(webauthn.options_to_json(options))


	def authentication_options(self, challenge: bytes, allow_credentials: typing.Iterable[bytes] = ()) -> dict:
		"""
		WebAuthn authentication options

		https://www.w3.org/TR/webauthn/#dictdef-publickeycredentialrequestoptions
		"""
		options = webauthn.generate_authentication_options(
			rp_id=self.RelyingPartyId,
			challenge=challenge,
			timeout=self.ChallengeTimeout,
			allow_credentials=[
				webauthn.helpers.structs.PublicKeyCredentialDescriptor(id=credential_id)
				for credential_id in allow_credentials
			],
			user_verification=webauthn.helpers.structs.UserVerificationRequirement.PREFERRED,
		)
		return json.loads(webauthn.options_to_json(options))


	async def process_attestation(
		self, client_data_json: bytes, attestation_object: bytes, expected_challenge: bytes
	) -> Result:
		"""
		Verify a registration response.

		On success the result value is a `(credential_id, public_key, sign_count)` tuple.
		"""
		return await self._run_verification(
			"attestation", self._process_attestation_worker,
			client_data_json, attestation_object, expected_challenge
		)


	async def process_assertion(
		self, client_data_json: bytes, authenticator_data: bytes, signature: bytes, credential_id: bytes,
		public_key: bytes, expected_challenge: bytes, sign_count: int
	) -> Result:
		"""
		Verify an authentication response against the stored public key.

		On success the result value is the new signature counter,
		which is strictly greater than `sign_count`.
		"""
		result = await self._run_verification(
			"assertion", self._process_assertion_worker,
			client_data_json, authenticator_data, signature, credential_id,
			public_key, expected_challenge, sign_count
		)
		if not result.ok:
			return result

		# The library lets a counter that stays at zero through
		new_sign_count = result.Value
		if new_sign_count <= sign_count and not (self.AllowZeroSignCount and new_sign_count == 0 and sign_count == 0):
			return Result.failure(
				AuthError.VerificationFailed,
				"Signature counter did not increase ({} -> {})".format(sign_count, new_sign_count)
			)
		return result


	async def _run_verification(self, kind, worker, *args) -> Result:
		try:
			value = await asyncio.wait_for(
				self.ProactorService.execute(worker, *args),
				timeout=self.VerificationTimeout
			)
		except asyncio.TimeoutError:
			L.warning("WebAuthn {} verification timed out".format(kind), struct_data={
				"timeout": self.VerificationTimeout})
			return Result.failure(AuthError.VerificationFailed, "Verification timed out")
		except Exception as e:
			L.warning("WebAuthn {} verification failed with {}: {}".format(kind, type(e).__name__, str(e)))
			return Result.failure(AuthError.VerificationFailed, "{}: {}".format(type(e).__name__, e))
		return Result.success(value)


	def _process_attestation_worker(self, client_data_json, attestation_object, expected_challenge):
		attestation = webauthn.helpers.parse_attestation_object(attestation_object)
		attested = attestation.auth_data.attested_credential_data
		if attested is None:
			raise ValueError("Attestation contains no credential data")
		raw_id = attested.credential_id

		registration_credential = webauthn.helpers.structs.RegistrationCredential(
			id=base64url_encode(raw_id),
			raw_id=raw_id,
			response=webauthn.helpers.structs.AuthenticatorAttestationResponse(
				client_data_json=client_data_json,
				attestation_object=attestation_object,
			),
		)
		verified_registration = webauthn.verify_registration_response(
			credential=registration_credential,
			expected_challenge=expected_challenge,
			expected_rp_id=self.RelyingPartyId,
			expected_origin=self.Origins,
			supported_pub_key_algs=self.SupportedAlgorithms,
		)
		return (
			bytes(verified_registration.credential_id),
			bytes(verified_registration.credential_public_key),
			int(verified_registration.sign_count),
		)


	def _process_assertion_worker(
		self, client_data_json, authenticator_data, signature, credential_id,
		public_key, expected_challenge, sign_count
	):
		authentication_credential = webauthn.helpers.structs.AuthenticationCredential(
			id=base64url_encode(credential_id),
			raw_id=credential_id,
			response=webauthn.helpers.structs.AuthenticatorAssertionResponse(
				client_data_json=client_data_json,
				authenticator_data=authenticator_data,
				signature=signature,
			),
		)
		verified_authentication = webauthn.verify_authentication_response(
			credential=authentication_credential,
			expected_challenge=expected_challenge,
			expected_rp_id=self.RelyingPartyId,
			expected_origin=self.Origins,
			credential_public_key=public_key,
			credential_current_sign_count=sign_count,
			require_user_verification=False,
		)
		return int(verified_authentication.new_sign_count)
