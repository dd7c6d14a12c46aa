import logging

from .operation import Operation
from .result import Result, AuthError, result_response
from .. import exceptions
from ..generic import read_json_body

#

L = logging.getLogger(__name__)

#


class DispatchHandler(object):
	"""
	Single endpoint used by the native client: `GET|POST /?operation=<operation>`

	Arguments are taken from the query string, and from the JSON body where there is one.
	A request without a body is the first half of a two-step operation,
	a request with a body (the signed WebAuthn response) is the second half.

	`update` and `delete` apply the mutation directly, unless it is configured to need a step-up.
	Then the request without a body returns a step-up challenge
	and the request with the assertion in the body applies the mutation.

	---
	tags: ["Public"]
	"""

	def __init__(self, app, authn_handler, account_handler):
		self.AuthenticationHandler = authn_handler
		self.AccountHandler = account_handler
		self.SessionService = app.get_service("passkeysdemo.SessionService")

		web_app = app.WebContainer.WebApp
		web_app.router.add_get("/", self.dispatch)
		web_app.router.add_post("/", self.dispatch)


	async def dispatch(self, request):
		try:
			body = await read_json_body(request)
		except exceptions.BadRequestError as e:
			L.info("Bad request: {}".format(e))
			return self._bad_request(request)
		return await self.dispatch_operation(request, dict(request.query), body)


	async def dispatch_operation(self, request, query: dict, body: dict):
		try:
			op = Operation(query.get("operation", ""))
		except ValueError:
			L.info("Unknown operation", struct_data={"operation": query.get("operation")})
			return self._bad_request(request)

		data = {k: v for k, v in query.items() if k != "operation"}
		data.update(body)
		second_step = len(body) > 0

		if op == Operation.Create:
			if second_step:
				return await self.AuthenticationHandler.complete_create(request, data)
			return await self.AuthenticationHandler.begin_create(request, data)

		elif op == Operation.Login:
			if second_step:
				return await self.AuthenticationHandler.complete_login(request, data)
			return await self.AuthenticationHandler.begin_login(request, data)

		elif op == Operation.Read:
			return await self.AccountHandler.read_profile(request)

		elif op == Operation.Logout:
			return await self.AccountHandler.logout(request)

		elif op == Operation.Update:
			if second_step:
				return await self.AccountHandler.complete_stepup(request, data=data)
			if self.AccountHandler.requires_stepup(Operation.Update):
				data["operation"] = Operation.Update.value
				return await self.AccountHandler.begin_stepup(request, data=data)
			return await self.AccountHandler.apply_update(request, data=data)

		elif op == Operation.Delete:
			if second_step:
				return await self.AccountHandler.complete_stepup(request, data=data)
			if self.AccountHandler.requires_stepup(Operation.Delete):
				return await self.AccountHandler.begin_stepup(request, data={"operation": Operation.Delete.value})
			return await self.AccountHandler.delete_account(request)

		raise NotImplementedError("Operation {!r} is not dispatched".format(op))


	def _bad_request(self, request):
		self.SessionService.clear_challenge(request.Session)
		return result_response(request, Result.failure(AuthError.BadRequest))
