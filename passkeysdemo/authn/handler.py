import logging

from . import operation
from .result import Result, AuthError, result_response
from .. import exceptions
from ..generic import read_json_body

#

L = logging.getLogger(__name__)

#


class AuthenticationHandler(object):
	"""
	Register a passkey and log in with it

	Both flows take two requests within one cookie session:
	the first returns a challenge, the second submits the signed response.

	---
	tags: ["Public"]
	"""

	def __init__(self, app, authn_svc):
		self.AuthenticationService = authn_svc
		self.SessionService = app.get_service("passkeysdemo.SessionService")

		web_app = app.WebContainer.WebApp
		web_app.router.add_post("/public/create/challenge", self.create_challenge)
		web_app.router.add_post("/public/create", self.create)
		web_app.router.add_post("/public/login/challenge", self.login_challenge)
		web_app.router.add_post("/public/login", self.login)


	async def create_challenge(self, request):
		"""
		Start registration of a new user

		Returns the `publicKey` credential creation options for the platform authenticator.
		"""
		try:
			data = await read_json_body(request)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		return await self.begin_create(request, data)


	async def create(self, request):
		"""
		Complete the registration with the attestation produced by the authenticator

		Returns the profile and a bearer token.
		"""
		try:
			data = await read_json_body(request)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		return await self.complete_create(request, data)


	async def login_challenge(self, request):
		"""
		Start a login

		Without `userId`, the challenge is usable with any discoverable passkey.
		"""
		try:
			data = await read_json_body(request)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		return await self.begin_login(request, data)


	async def login(self, request):
		"""
		Complete the login with a signed assertion

		Returns a new bearer token. Tokens issued earlier for the same credential stop being valid.
		"""
		try:
			data = await read_json_body(request)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		return await self.complete_login(request, data)


	async def begin_create(self, request, data: dict):
		try:
			create_request = operation.parse_begin_create(data)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		result = await self.AuthenticationService.start_create(request.Session, create_request)
		return result_response(request, result)


	async def complete_create(self, request, data: dict):
		try:
			create_request = operation.parse_complete_create(data)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		result = await self.AuthenticationService.complete_create(request.Session, create_request)
		return result_response(request, result)


	async def begin_login(self, request, data: dict):
		try:
			login_request = operation.parse_begin_login(data)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		result = await self.AuthenticationService.start_login(request.Session, login_request)
		return result_response(request, result)


	async def complete_login(self, request, data: dict):
		try:
			assertion = operation.parse_assertion(data)
		except exceptions.BadRequestError as e:
			return self.bad_request(request, e)
		result = await self.AuthenticationService.complete_login(request.Session, assertion)
		return result_response(request, result)


	def bad_request(self, request, error: exceptions.BadRequestError):
		L.info("Bad request: {}".format(error), struct_data={"sid": request.Session.Id, "field": error.Field})
		# A malformed request also ends the flow in progress
		self.SessionService.clear_challenge(request.Session)
		return result_response(request, Result.failure(AuthError.BadRequest, str(error)))
