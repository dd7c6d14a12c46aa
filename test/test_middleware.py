import datetime
import unittest
import unittest.mock

import aiohttp.web

from passkeysdemo.middleware import session_middleware_factory
from passkeysdemo.session import ChallengePurpose, SessionState

from fakes import make_app


class SessionMiddlewareTestCase(unittest.IsolatedAsyncioTestCase):
	maxDiff = None

	def setUp(self):
		self.App = make_app()
		self.Sessions = self.App.Services["passkeysdemo.SessionService"]
		self.Middleware = session_middleware_factory(self.App)


	def request(self, cookies=None):
		request = unittest.mock.MagicMock()
		request.cookies = cookies or {}
		return request


	async def test_stateless_request_stores_nothing(self):
		request = self.request()
		handler = unittest.mock.AsyncMock(return_value=aiohttp.web.Response())

		response = await self.Middleware(request, handler)
		handler.assert_awaited_once_with(request)
		self.assertEqual(request.Session.State, SessionState.Anonymous)
		self.assertEqual(self.Sessions.Sessions, {})
		self.assertNotIn("PKDSID", response.cookies)


	async def test_challenge_stores_session(self):
		async def handler(request):
			self.Sessions.set_challenge(request.Session, b"x" * 32, ChallengePurpose.Login)
			return aiohttp.web.Response()

		request = self.request()
		response = await self.Middleware(request, handler)
		self.assertIs(self.Sessions.get(request.Session.Id), request.Session)
		self.assertEqual(response.cookies["PKDSID"].value, request.Session.Id)
		self.assertTrue(response.cookies["PKDSID"]["httponly"])


	async def test_failed_handler_stores_nothing(self):
		async def handler(request):
			self.Sessions.set_challenge(request.Session, b"x" * 32, ChallengePurpose.Login)
			raise RuntimeError("boom")

		with self.assertRaises(RuntimeError):
			await self.Middleware(self.request(), handler)
		self.assertEqual(self.Sessions.Sessions, {})


	async def test_existing_session(self):
		session = self.Sessions.create()
		session.Expiration = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=5)
		request = self.request({"PKDSID": session.Id})
		handler = unittest.mock.AsyncMock(return_value=aiohttp.web.Response())

		response = await self.Middleware(request, handler)
		self.assertIs(request.Session, session)
		# Touched
		self.assertGreater(session.Expiration, datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=60))
		self.assertNotIn("PKDSID", response.cookies)


	async def test_unknown_cookie(self):
		request = self.request({"PKDSID": "no-such-session"})
		handler = unittest.mock.AsyncMock(return_value=aiohttp.web.Response())

		response = await self.Middleware(request, handler)
		self.assertNotEqual(request.Session.Id, "no-such-session")
		self.assertEqual(self.Sessions.Sessions, {})
		self.assertNotIn("PKDSID", response.cookies)
