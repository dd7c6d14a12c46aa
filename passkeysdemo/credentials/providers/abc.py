import abc
import logging
import typing

import asab

from ...models import Credential, UserProfile

#

L = logging.getLogger(__name__)

#


class CredentialsProviderABC(asab.Configurable, abc.ABC):
	"""
	Persistent store of credentials and user profiles.

	Every method that writes to both tables is a single transaction:
	either all of its changes become visible, or none of them.
	"""

	Type = "abc"

	# Keys accepted by `update()`
	# "display_name" is written to both the credential and the profile
	UpdatableFields = frozenset([
		"sign_count",
		"bearer_token_hash",
		"display_name",
		"credo",
	])

	ConfigDefaults = {}

	def __init__(self, app, config_section_name, config=None):
		super().__init__(config_section_name=config_section_name, config=config)
		self.App = app


	def get_info(self) -> dict:
		return {
			"_type": self.Type,
		}


	@abc.abstractmethod
	async def create(self, credential: Credential, profile: UserProfile):
		"""
		Insert the credential and its profile.

		Raise AlreadyRegisteredError if the user ID or the credential ID is taken.
		"""
		raise NotImplementedError("in {}".format(self.Type))


	@abc.abstractmethod
	async def get(self, user_id: str) -> Credential:
		"""
		Raise CredentialNotFoundError if the user has no credential.
		"""
		raise NotImplementedError("in {}".format(self.Type))


	@abc.abstractmethod
	async def get_by_credential_id(self, credential_id: bytes) -> Credential:
		raise NotImplementedError("in {}".format(self.Type))


	@abc.abstractmethod
	async def get_by_token_hash(self, token_hash: str) -> Credential:
		raise NotImplementedError("in {}".format(self.Type))


	@abc.abstractmethod
	async def get_profile(self, user_id: str) -> UserProfile:
		raise NotImplementedError("in {}".format(self.Type))


	@abc.abstractmethod
	async def update(self, user_id: str, update: dict, expected_sign_count: typing.Optional[int] = None):
		"""
		Apply the changes to the credential and/or the profile in one transaction.

		If `expected_sign_count` is given, the update only happens if the stored counter still has that value,
		otherwise SignCountConflictError is raised and nothing is written.
		"""
		raise NotImplementedError("in {}".format(self.Type))


	@abc.abstractmethod
	async def delete(self, user_id: str):
		"""
		Delete the credential and the profile, or neither.
		"""
		raise NotImplementedError("in {}".format(self.Type))


	def _check_update(self, update: dict):
		unknown = set(update.keys()) - self.UpdatableFields
		if len(unknown) > 0:
			raise KeyError("Some credential fields cannot be updated: {}".format(", ".join(sorted(unknown))))
