import logging
import functools
import inspect

import asab

from .authn.result import Result, AuthError, result_response
from .generic import get_bearer_token_value

#

L = logging.getLogger(__name__)

#


def bearer_auth(handler):
	"""
	Authenticate the request with the `Authorization: Bearer <token>` header.

	The token must match both the token stored on a credential and the token bound to the request session.
	If it does not, the session forgets its login and any challenge in progress, and the response is 401 `authorization-mismatch`.

	The decorated handler can ask for the authenticated credential with the `credential` keyword argument.

	#############
	##  USAGE

		```
		web_app.router.add_get("/account/profile", self.read_profile)

		@bearer_auth
		async def read_profile(self, request, *, credential):
			...
		```
	"""

	# Inspect the signature of the decorated function for relevant kwargs
	handler_argspecs = inspect.getfullargspec(handler)
	pass_credential = "credential" in handler_argspecs.kwonlyargs

	@functools.wraps(handler)
	async def wrapper(*args, **kwargs):
		request = args[-1]
		token_svc = request.App.get_service("passkeysdemo.BearerTokenService")

		token = get_bearer_token_value(request)
		if token is None:
			L.log(asab.LOG_NOTICE, "Unauthorized access: Bearer token required")
			# Forget the login and any challenge in progress
			request.App.get_service("passkeysdemo.SessionService").clear(request.Session)
			return result_response(request, Result.failure(AuthError.AuthorizationMismatch))

		credential = await token_svc.validate(request.Session, token)
		if credential is None:
			L.log(asab.LOG_NOTICE, "Unauthorized access: Bearer token mismatch")
			return result_response(request, Result.failure(AuthError.AuthorizationMismatch))

		if pass_credential:
			kwargs["credential"] = credential
		return await handler(*args, **kwargs)

	return wrapper
