import logging
import typing

import asab

from .adapter import Session
from ..models import Credential, UserProfile
from .. import exceptions, generic

#

L = logging.getLogger(__name__)

#


class BearerTokenService(asab.Service):
	"""
	Issue, validate and revoke bearer tokens.

	A token is valid when the value presented in the Authorization header,
	the hash stored on the credential row and the hash bound to the session all agree.
	Only the SHA-256 digest of a token is ever stored.
	"""

	TokenLength = 32

	def __init__(self, app, service_name="passkeysdemo.BearerTokenService"):
		super().__init__(app, service_name)
		self.CredentialsService = app.get_service("passkeysdemo.CredentialsService")
		self.SessionService = app.get_service("passkeysdemo.SessionService")
		self.BindToSession = asab.Config.getboolean("passkeysdemo:session", "bind_bearer_token")


	async def issue(
		self, session: Session, user_id: str,
		update: typing.Optional[dict] = None,
		expected_sign_count: typing.Optional[int] = None,
	) -> str:
		"""
		Mint a new token for the credential and bind it to the session.

		The token hash is written together with `update` in a single store update,
		replacing any token issued before for the same credential.
		"""
		token = generic.generate_token(self.TokenLength)
		token_hash = generic.hash_token(token)

		update = dict(update or {})
		update["bearer_token_hash"] = token_hash
		await self.CredentialsService.update(user_id, update, expected_sign_count=expected_sign_count)

		# Other sessions of this user hold a token that is no longer valid
		self.SessionService.unbind_user(user_id)
		self.SessionService.bind(session, user_id, token_hash)

		L.log(asab.LOG_NOTICE, "Bearer token issued", struct_data={"uid": user_id, "sid": session.Id})
		return token


	async def issue_with_credential(self, session: Session, credential: Credential, profile: UserProfile) -> str:
		"""
		Store a newly registered credential together with its profile and its first token.
		"""
		token = generic.generate_token(self.TokenLength)
		token_hash = generic.hash_token(token)
		credential.BearerTokenHash = token_hash
		await self.CredentialsService.create(credential, profile)

		self.SessionService.bind(session, credential.UserId, token_hash)

		L.log(asab.LOG_NOTICE, "Bearer token issued", struct_data={"uid": credential.UserId, "sid": session.Id})
		return token


	async def validate(self, session: typing.Optional[Session], token: typing.Optional[str]) -> typing.Optional[Credential]:
		"""
		Return the credential the token belongs to, or None if the token is not valid.

		An invalid token clears the login binding and the outstanding challenge of the session.
		"""
		if token is None:
			self._reject(session)
			return None

		token_hash = generic.hash_token(token)
		try:
			credential = await self.CredentialsService.get_by_token_hash(token_hash)
		except exceptions.CredentialNotFoundError:
			credential = None

		if credential is None or not generic.tokens_equal(credential.BearerTokenHash, token_hash):
			L.warning("Bearer token not recognized", struct_data={"sid": session.Id if session else None})
			self._reject(session)
			return None

		if session is not None and session.BearerTokenHash is not None:
			if not generic.tokens_equal(session.BearerTokenHash, token_hash) or session.UserId != credential.UserId:
				L.warning("Bearer token does not match the session", struct_data={
					"sid": session.Id, "uid": credential.UserId})
				self._reject(session)
				return None

		elif self.BindToSession:
			L.warning("Bearer token presented outside of its session", struct_data={
				"sid": session.Id if session else None, "uid": credential.UserId})
			self._reject(session)
			return None

		elif session is not None:
			# Session was lost, the token stored on the credential row still proves the login
			self.SessionService.bind(session, credential.UserId, token_hash)

		return credential


	async def revoke(self, session: typing.Optional[Session], user_id: str):
		"""
		Remove the token from the credential row and clear the session.
		"""
		try:
			await self.CredentialsService.update(user_id, {"bearer_token_hash": None})
		except exceptions.CredentialNotFoundError:
			pass
		self.SessionService.unbind_user(user_id)
		if session is not None:
			self.SessionService.clear(session)
		L.log(asab.LOG_NOTICE, "Bearer token revoked", struct_data={
			"uid": user_id, "sid": session.Id if session else None})


	def _reject(self, session: typing.Optional[Session]):
		if session is not None:
			self.SessionService.clear(session)
