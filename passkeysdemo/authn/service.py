import logging
import typing

import asab

from .operation import (
	Operation,
	BeginCreateRequest,
	CompleteCreateRequest,
	BeginLoginRequest,
	AssertionRequest,
	BeginStepUpRequest,
)
from .result import Result, AuthError
from ..models import Credential, UserProfile
from ..session import Session, ChallengePurpose
from .. import exceptions, generic

#

L = logging.getLogger(__name__)

#


class AuthenticationService(asab.Service):
	"""
	Challenge-response state machine of the create, login and step-up flows.

	Every transition takes the session explicitly and returns a Result.
	The service itself holds no per-client state.

	Session states:
		Anonymous -> ChallengeIssued(purpose) -> Authenticated -> Anonymous (logout, delete)
		ChallengeIssued -> Anonymous (failed verification)

	Any failed transition leaves the session without a challenge.
	"""

	def __init__(self, app, service_name="passkeysdemo.AuthenticationService"):
		super().__init__(app, service_name)
		self.CredentialsService = app.get_service("passkeysdemo.CredentialsService")
		self.SessionService = app.get_service("passkeysdemo.SessionService")
		self.BearerTokenService = app.get_service("passkeysdemo.BearerTokenService")
		self.WebAuthnService = app.get_service("passkeysdemo.WebAuthnService")

		self.MetricsService = app.get_service("asab.MetricsService")
		self.FailureCounter = self.MetricsService.create_counter(
			"verification_failures",
			tags={"help": "Counts failed WebAuthn verifications per flow."},
			init_values={"create": 0, "login": 0, "stepup": 0},
		)


	# Create

	async def start_create(self, session: Session, request: BeginCreateRequest) -> Result:
		try:
			await self.CredentialsService.get(request.UserId)
		except exceptions.CredentialNotFoundError:
			pass
		except exceptions.StorageError as e:
			return self._fail(session, AuthError.StorageFailure, str(e))
		else:
			L.info("Registration refused: User already registered", struct_data={
				"uid": request.UserId, "sid": session.Id})
			return self._fail(session, AuthError.AlreadyRegistered)

		challenge = self.WebAuthnService.generate_challenge()
		self.SessionService.set_challenge(
			session, challenge, ChallengePurpose.Create,
			user_id=request.UserId,
			display_name=request.DisplayName,
		)
		options = self.WebAuthnService.registration_options(challenge, request.UserId, request.DisplayName)

		L.info("Registration challenge issued", struct_data={"uid": request.UserId, "sid": session.Id})
		return Result.success({"publicKey": options})


	async def complete_create(self, session: Session, request: CompleteCreateRequest) -> Result:
		pending = self.SessionService.pop_challenge(session, ChallengePurpose.Create)
		if pending is None:
			return self._fail(session, AuthError.VerificationFailed, "No registration challenge", flow="create")

		result = await self.WebAuthnService.process_attestation(
			request.ClientDataJSON, request.AttestationObject, pending.Value)
		if not result.ok:
			return self._fail(session, result.Error, result.Detail, flow="create", user_id=pending.UserId)

		credential_id, public_key, sign_count = result.Value
		credential = Credential(
			UserId=pending.UserId,
			CredentialId=credential_id,
			DisplayName=pending.DisplayName,
			PublicKey=public_key,
			SignCount=sign_count,
		)
		profile = UserProfile(
			UserId=pending.UserId,
			DisplayName=pending.DisplayName,
			Credo="",
		)

		try:
			token = await self.BearerTokenService.issue_with_credential(session, credential, profile)
		except exceptions.AlreadyRegisteredError:
			return self._fail(session, AuthError.AlreadyRegistered)
		except exceptions.StorageError as e:
			return self._fail(session, AuthError.StorageFailure, str(e))

		L.log(asab.LOG_NOTICE, "User registered", struct_data={
			"uid": credential.UserId,
			"wacid": generic.base64url_encode(credential.CredentialId),
			"sid": session.Id,
		})
		return Result.success({
			"displayName": profile.DisplayName,
			"credo": profile.Credo,
			"bearerToken": token,
		})


	# Login

	async def start_login(self, session: Session, request: BeginLoginRequest) -> Result:
		allow_credentials = []
		if request.UserId is not None:
			try:
				credential = await self.CredentialsService.get(request.UserId)
			except exceptions.CredentialNotFoundError:
				L.info("Login refused: User not found", struct_data={"uid": request.UserId, "sid": session.Id})
				return self._fail(session, AuthError.UserNotFound)
			except exceptions.StorageError as e:
				return self._fail(session, AuthError.StorageFailure, str(e))
			allow_credentials.append(credential.CredentialId)

		challenge = self.WebAuthnService.generate_challenge()
		self.SessionService.set_challenge(session, challenge, ChallengePurpose.Login, user_id=request.UserId)

		L.info("Login challenge issued", struct_data={"uid": request.UserId, "sid": session.Id})
		return Result.success(self._authentication_response(challenge, allow_credentials))


	async def complete_login(self, session: Session, request: AssertionRequest) -> Result:
		pending = self.SessionService.pop_challenge(session, ChallengePurpose.Login)
		if pending is None:
			return self._fail(session, AuthError.VerificationFailed, "No login challenge", flow="login")

		try:
			credential = await self.CredentialsService.get_by_credential_id(request.CredentialId)
		except exceptions.CredentialNotFoundError:
			L.info("Login failed: Credential not found", struct_data={
				"wacid": generic.base64url_encode(request.CredentialId), "sid": session.Id})
			return self._fail(session, AuthError.UserNotFound)
		except exceptions.StorageError as e:
			return self._fail(session, AuthError.StorageFailure, str(e))

		if pending.UserId is not None and pending.UserId != credential.UserId:
			L.warning("Login failed: Credential belongs to another user", struct_data={
				"uid": pending.UserId, "sid": session.Id})
			return self._fail(session, AuthError.AuthorizationMismatch)

		result = await self._verify_assertion(request, credential, pending.Value)
		if not result.ok:
			# A failed login also ends the existing login of this credential
			await self._revoke_quietly(None, credential.UserId)
			return self._fail(session, result.Error, result.Detail, flow="login", user_id=credential.UserId)

		try:
			token = await self.BearerTokenService.issue(
				session, credential.UserId,
				{"sign_count": result.Value},
				expected_sign_count=credential.SignCount,
			)
		except exceptions.SignCountConflictError:
			return self._fail(session, AuthError.VerificationFailed, "Concurrent login", flow="login")
		except exceptions.CredentialNotFoundError:
			return self._fail(session, AuthError.UserNotFound)
		except exceptions.StorageError as e:
			return self._fail(session, AuthError.StorageFailure, str(e))

		L.log(asab.LOG_NOTICE, "Login successful", struct_data={"uid": credential.UserId, "sid": session.Id})
		return Result.success({"bearerToken": token})


	# Step-up

	async def start_stepup(self, session: Session, credential: Credential, request: BeginStepUpRequest) -> Result:
		"""
		Issue a challenge that authorizes exactly one account mutation of the logged-in user.
		"""
		mutation = {"operation": request.Operation.value}
		if request.Operation == Operation.Update:
			mutation["display_name"] = request.Update.DisplayName
			mutation["credo"] = request.Update.Credo

		challenge = self.WebAuthnService.generate_challenge()
		self.SessionService.set_challenge(
			session, challenge, ChallengePurpose.StepUp,
			user_id=credential.UserId,
			mutation=mutation,
		)

		L.info("Step-up challenge issued", struct_data={
			"uid": credential.UserId, "sid": session.Id, "operation": mutation["operation"]})
		return Result.success(self._authentication_response(challenge, [credential.CredentialId]))


	async def complete_stepup(self, session: Session, credential: Credential, request: AssertionRequest) -> Result:
		"""
		Verify the step-up assertion and apply the pending mutation
		together with the new signature counter.
		"""
		pending = self.SessionService.pop_challenge(session, ChallengePurpose.StepUp)
		if pending is None:
			return self._fail_stepup(session, AuthError.VerificationFailed, "No step-up challenge")

		if pending.UserId != credential.UserId \
			or not generic.tokens_equal(request.CredentialId, credential.CredentialId):
			L.warning("Step-up failed: Assertion is not from the logged-in credential", struct_data={
				"uid": credential.UserId, "sid": session.Id})
			return self._fail_stepup(session, AuthError.AuthorizationMismatch)

		result = await self._verify_assertion(request, credential, pending.Value)
		if not result.ok:
			return self._fail_stepup(session, result.Error, result.Detail, user_id=credential.UserId)
		new_sign_count = result.Value

		operation = Operation(pending.Mutation["operation"])
		try:
			if operation == Operation.Update:
				await self.CredentialsService.update(
					credential.UserId,
					{
						"sign_count": new_sign_count,
						"display_name": pending.Mutation["display_name"],
						"credo": pending.Mutation["credo"],
					},
					expected_sign_count=credential.SignCount,
				)
				profile = await self.CredentialsService.get_profile(credential.UserId)
				L.log(asab.LOG_NOTICE, "Profile updated after step-up", struct_data={
					"uid": credential.UserId, "sid": session.Id})
				return Result.success(profile.rest_get())

			elif operation == Operation.Delete:
				await self.CredentialsService.update(
					credential.UserId,
					{"sign_count": new_sign_count},
					expected_sign_count=credential.SignCount,
				)
				await self.CredentialsService.delete(credential.UserId)
				self.SessionService.unbind_user(credential.UserId)
				self.SessionService.clear(session)
				L.log(asab.LOG_NOTICE, "Account deleted after step-up", struct_data={
					"uid": credential.UserId, "sid": session.Id})
				return Result.success()

		except exceptions.SignCountConflictError:
			return self._fail_stepup(session, AuthError.VerificationFailed, "Concurrent step-up")
		except exceptions.CredentialNotFoundError:
			return self._fail_stepup(session, AuthError.UserNotFound)
		except exceptions.StorageError as e:
			return self._fail(session, AuthError.StorageFailure, str(e))

		raise ValueError("Unsupported step-up operation {!r}".format(operation))


	# Helpers

	async def _verify_assertion(self, request: AssertionRequest, credential: Credential, challenge: bytes) -> Result:
		return await self.WebAuthnService.process_assertion(
			request.ClientDataJSON,
			request.AuthenticatorData,
			request.Signature,
			credential.CredentialId,
			credential.PublicKey,
			challenge,
			credential.SignCount,
		)


	def _authentication_response(self, challenge: bytes, allow_credentials: typing.List[bytes]) -> dict:
		return {
			"challenge": generic.base64url_encode(challenge),
			"allowedIDs": [generic.base64url_encode(credential_id) for credential_id in allow_credentials],
			"publicKey": self.WebAuthnService.authentication_options(challenge, allow_credentials),
		}


	def _fail(
		self, session: Session, error: AuthError, detail: typing.Optional[str] = None,
		flow: typing.Optional[str] = None, user_id: typing.Optional[str] = None
	) -> Result:
		self.SessionService.clear_challenge(session)
		if error == AuthError.VerificationFailed and flow is not None:
			self.FailureCounter.add(flow, 1)
			L.warning("Verification failed", struct_data={
				"flow": flow, "uid": user_id, "sid": session.Id, "reason": detail})
		elif error == AuthError.StorageFailure:
			L.error("Storage failure", struct_data={"sid": session.Id, "reason": detail})
		return Result.failure(error, detail)


	def _fail_stepup(
		self, session: Session, error: AuthError, detail: typing.Optional[str] = None,
		user_id: typing.Optional[str] = None
	) -> Result:
		result = self._fail(session, error, detail, flow="stepup", user_id=user_id)
		# The session has to log in again
		self.SessionService.clear(session)
		return result


	async def _revoke_quietly(self, session: typing.Optional[Session], user_id: str):
		try:
			await self.BearerTokenService.revoke(session, user_id)
		except exceptions.StorageError as e:
			L.error("Failed to revoke bearer token: {}".format(e), struct_data={"uid": user_id})
