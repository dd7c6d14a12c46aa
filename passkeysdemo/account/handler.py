import logging

from ..authn import operation
from ..authn.operation import Operation
from ..authn.result import Result, AuthError, result_response
from ..decorators import bearer_auth
from .. import exceptions
from ..generic import read_json_body

#

L = logging.getLogger(__name__)

#


class AccountHandler(object):
	"""
	Profile of the logged-in user

	Every request needs the bearer token received at registration or login.

	---
	tags: ["Account"]
	"""

	def __init__(self, app, account_svc):
		self.AccountService = account_svc
		self.AuthenticationService = app.get_service("passkeysdemo.AuthenticationService")
		self.SessionService = app.get_service("passkeysdemo.SessionService")

		web_app = app.WebContainer.WebApp
		web_app.router.add_get("/account/profile", self.read_profile)
		web_app.router.add_put("/account/profile", self.update_profile)
		web_app.router.add_delete("/account", self.delete_account)
		web_app.router.add_post("/account/stepup/challenge", self.stepup_challenge)
		web_app.router.add_post("/account/stepup", self.stepup)
		web_app.router.add_post("/account/logout", self.logout)


	@bearer_auth
	async def read_profile(self, request, *, credential):
		"""
		Get the display name and credo of the current user
		"""
		result = await self.AccountService.read_profile(credential)
		return result_response(request, result)


	async def update_profile(self, request):
		"""
		Change the display name and credo of the current user

		Fails with 403 `step-up-required` if profile updates are configured to need a step-up.
		"""
		try:
			data = await read_json_body(request)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		return await self.apply_update(request, data=data)


	@bearer_auth
	async def delete_account(self, request, *, credential):
		"""
		Delete the current user and log out

		Fails with 403 `step-up-required` if deletion is configured to need a step-up.
		"""
		result = await self.AccountService.delete_account(request.Session, credential)
		return result_response(request, result)


	async def stepup_challenge(self, request):
		"""
		Start a step-up for one account mutation

		The body names the mutation (`update` with the new profile values, or `delete`),
		which is applied once the assertion is verified.
		"""
		try:
			data = await read_json_body(request)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		return await self.begin_stepup(request, data=data)


	async def stepup(self, request):
		"""
		Complete the step-up with a signed assertion and apply the pending mutation
		"""
		try:
			data = await read_json_body(request)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		return await self.complete_stepup(request, data=data)


	@bearer_auth
	async def logout(self, request, *, credential):
		"""
		Revoke the bearer token and clear the session
		"""
		result = await self.AccountService.logout(request.Session, credential)
		return result_response(request, result)


	@bearer_auth
	async def apply_update(self, request, *, data, credential):
		try:
			update_request = operation.parse_update_profile(data)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		result = await self.AccountService.update_profile(request.Session, credential, update_request)
		return result_response(request, result)


	@bearer_auth
	async def begin_stepup(self, request, *, data, credential):
		try:
			stepup_request = operation.parse_begin_stepup(data)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		result = await self.AuthenticationService.start_stepup(request.Session, credential, stepup_request)
		return result_response(request, result)


	@bearer_auth
	async def complete_stepup(self, request, *, data, credential):
		try:
			assertion = operation.parse_assertion(data)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		result = await self.AuthenticationService.complete_stepup(request.Session, credential, assertion)
		return result_response(request, result)


	def requires_stepup(self, operation_: Operation) -> bool:
		return self.AccountService.requires_stepup(operation_)


	def bad_request(self, request, error: exceptions.BadRequestError):
		L.info("Bad request: {}".format(error), struct_data={"sid": request.Session.Id, "field": error.Field})
		self.SessionService.clear_challenge(request.Session)
		return result_response(request, Result.failure(AuthError.BadRequest, str(error)))
