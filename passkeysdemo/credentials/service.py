import logging
import typing

import asab

from .providers.abc import CredentialsProviderABC
from ..models import Credential, UserProfile

#

L = logging.getLogger(__name__)

#


class CredentialsService(asab.Service):
	"""
	Owns the configured credential store.

	The demo keeps exactly one credential per user, so there is a single provider
	selected by `[passkeysdemo:credentials] provider`.
	"""

	def __init__(self, app, service_name="passkeysdemo.CredentialsService", provider: CredentialsProviderABC = None):
		super().__init__(app, service_name)
		if provider is None:
			provider = self._create_provider(app, asab.Config.get("passkeysdemo:credentials", "provider"))
		self.Provider = provider


	def _create_provider(self, app, provider_type: str) -> CredentialsProviderABC:
		provider_type = provider_type.strip()
		if provider_type == "dict":
			from .providers.dictionary import DictCredentialsProvider
			return DictCredentialsProvider(app)
		elif provider_type == "mysql":
			from .providers.mysql import MySQLCredentialsProvider
			return MySQLCredentialsProvider(app)
		elif provider_type == "mongodb":
			from .providers.mongodb import MongoDBCredentialsProvider
			return MongoDBCredentialsProvider(app)
		raise ValueError("Unknown credentials provider {!r}".format(provider_type))


	async def create(self, credential: Credential, profile: UserProfile):
		return await self.Provider.create(credential, profile)


	async def get(self, user_id: str) -> Credential:
		return await self.Provider.get(user_id)


	async def get_by_credential_id(self, credential_id: bytes) -> Credential:
		return await self.Provider.get_by_credential_id(credential_id)


	async def get_by_token_hash(self, token_hash: str) -> Credential:
		return await self.Provider.get_by_token_hash(token_hash)


	async def get_profile(self, user_id: str) -> UserProfile:
		return await self.Provider.get_profile(user_id)


	async def update(self, user_id: str, update: dict, expected_sign_count: typing.Optional[int] = None):
		return await self.Provider.update(user_id, update, expected_sign_count=expected_sign_count)


	async def delete(self, user_id: str):
		return await self.Provider.delete(user_id)
