import logging

import aiohttp.web
import asab

from . import exceptions
from .session import SessionState

#

L = logging.getLogger(__name__)

#


def app_middleware_factory(app):

	@aiohttp.web.middleware
	async def app_middleware(request, handler):
		"""
		Add the application object to the request.
		"""
		request.App = app
		return await handler(request)

	return app_middleware


def session_middleware_factory(app):
	session_svc = app.get_service("passkeysdemo.SessionService")
	cookie_name = asab.Config.get("passkeysdemo:cookie", "name")
	cookie_secure = asab.Config.getboolean("passkeysdemo:cookie", "secure")
	cookie_domain = asab.Config.get("passkeysdemo:cookie", "domain") or None

	@aiohttp.web.middleware
	async def session_middleware(request, handler):
		"""
		Attach the server-side session identified by the session cookie to the request.

		A request without a valid cookie gets a transient session. It is stored and its cookie is set
		only if the handler left some state in it (a challenge or a login).
		"""
		request.Session = None
		session_id = request.cookies.get(cookie_name)
		if session_id is not None:
			try:
				request.Session = session_svc.get(session_id)
			except exceptions.SessionNotFoundError:
				L.info("Session cookie not recognized")

		is_new = request.Session is None
		if is_new:
			request.Session = session_svc.new()
		else:
			session_svc.touch(request.Session)

		response = await handler(request)

		if not is_new or request.Session.State == SessionState.Anonymous:
			return response

		session_svc.store(request.Session)
		if isinstance(response, aiohttp.web.StreamResponse):
			response.set_cookie(
				cookie_name,
				request.Session.Id,
				httponly=True,  # Not accessible from Javascript
				domain=cookie_domain,
				secure=cookie_secure,
				samesite="Strict",
			)
		return response

	return session_middleware
