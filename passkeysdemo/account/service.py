import logging

import asab

from ..authn.operation import Operation, UpdateProfileRequest
from ..authn.result import Result, AuthError
from ..models import Credential
from ..session import Session
from .. import exceptions

#

L = logging.getLogger(__name__)

#


class AccountService(asab.Service):
	"""
	Operations of a logged-in user that only need the bearer token.

	Mutations listed in `[passkeysdemo:stepup] require` are refused here
	and have to go through the step-up flow of AuthenticationService.
	"""

	def __init__(self, app, service_name="passkeysdemo.AccountService"):
		super().__init__(app, service_name)
		self.CredentialsService = app.get_service("passkeysdemo.CredentialsService")
		self.SessionService = app.get_service("passkeysdemo.SessionService")
		self.BearerTokenService = app.get_service("passkeysdemo.BearerTokenService")

		self.StepUpRequired = set()
		for mutation in asab.Config.get("passkeysdemo:stepup", "require").split():
			try:
				operation = Operation(mutation)
			except ValueError:
				raise ValueError("Unknown step-up mutation {!r}".format(mutation))
			if operation not in (Operation.Update, Operation.Delete):
				raise ValueError("Step-up is only available for 'update' and 'delete', not {!r}".format(mutation))
			self.StepUpRequired.add(operation)


	def requires_stepup(self, operation: Operation) -> bool:
		return operation in self.StepUpRequired


	async def read_profile(self, credential: Credential) -> Result:
		try:
			profile = await self.CredentialsService.get_profile(credential.UserId)
		except exceptions.CredentialNotFoundError:
			# Credential without a profile
			L.error("Profile not found", struct_data={"uid": credential.UserId})
			return Result.failure(AuthError.StorageFailure, "Profile not found")
		except exceptions.StorageError as e:
			return Result.failure(AuthError.StorageFailure, str(e))
		return Result.success(profile.rest_get())


	async def update_profile(self, session: Session, credential: Credential, request: UpdateProfileRequest) -> Result:
		if self.requires_stepup(Operation.Update):
			L.info("Profile update refused: Step-up required", struct_data={"uid": credential.UserId, "sid": session.Id})
			return self._fail(session, AuthError.StepUpRequired)

		try:
			await self.CredentialsService.update(credential.UserId, {
				"display_name": request.DisplayName,
				"credo": request.Credo,
			})
			profile = await self.CredentialsService.get_profile(credential.UserId)
		except exceptions.CredentialNotFoundError:
			return self._fail(session, AuthError.UserNotFound)
		except exceptions.StorageError as e:
			L.error("Profile update failed", struct_data={"uid": credential.UserId, "reason": str(e)})
			return self._fail(session, AuthError.StorageFailure, str(e))

		L.log(asab.LOG_NOTICE, "Profile updated", struct_data={"uid": credential.UserId, "sid": session.Id})
		return Result.success(profile.rest_get())


	async def delete_account(self, session: Session, credential: Credential) -> Result:
		if self.requires_stepup(Operation.Delete):
			L.info("Account deletion refused: Step-up required", struct_data={"uid": credential.UserId, "sid": session.Id})
			return self._fail(session, AuthError.StepUpRequired)

		try:
			await self.CredentialsService.delete(credential.UserId)
		except exceptions.CredentialNotFoundError:
			return self._fail(session, AuthError.UserNotFound)
		except exceptions.StorageError as e:
			L.error("Account deletion failed", struct_data={"uid": credential.UserId, "reason": str(e)})
			return self._fail(session, AuthError.StorageFailure, str(e))

		self.SessionService.unbind_user(credential.UserId)
		self.SessionService.clear(session)
		L.log(asab.LOG_NOTICE, "Account deleted", struct_data={"uid": credential.UserId, "sid": session.Id})
		return Result.success()


	async def logout(self, session: Session, credential: Credential) -> Result:
		try:
			await self.BearerTokenService.revoke(session, credential.UserId)
		except exceptions.StorageError as e:
			return self._fail(session, AuthError.StorageFailure, str(e))
		L.log(asab.LOG_NOTICE, "Logout", struct_data={"uid": credential.UserId, "sid": session.Id})
		return Result.success()


	def _fail(self, session: Session, error: AuthError, detail=None) -> Result:
		# Any refusal also drops the outstanding challenge
		self.SessionService.clear_challenge(session)
		return Result.failure(error, detail)
