import asyncio
import contextlib
import dataclasses
import logging
import typing

import asab

from .abc import CredentialsProviderABC
from ...models import Credential, UserProfile
from ... import exceptions, generic

#

L = logging.getLogger(__name__)

#


class DictCredentialsProvider(CredentialsProviderABC):
	"""
	In-memory credential store.

	All writes are serialized by a single lock and run inside `_transaction()`,
	which restores both tables if any step fails.
	"""

	Type = "dict"

	def __init__(self, app, config_section_name="passkeysdemo:credentials:dict", config=None):
		super().__init__(app, config_section_name, config=config)
		self.Lock = asyncio.Lock()
		self.CredentialTable: typing.Dict[str, Credential] = {}
		self.ProfileTable: typing.Dict[str, UserProfile] = {}


	async def create(self, credential: Credential, profile: UserProfile):
		assert credential.UserId == profile.UserId
		async with self.Lock:
			if credential.UserId in self.CredentialTable or credential.UserId in self.ProfileTable:
				raise exceptions.AlreadyRegisteredError(credential.UserId)
			if self._find(lambda c: c.CredentialId == credential.CredentialId) is not None:
				raise exceptions.AlreadyRegisteredError(credential.UserId)
			with self._transaction(credential.UserId):
				self._insert(self.CredentialTable, credential.UserId, dataclasses.replace(credential))
				self._insert(self.ProfileTable, profile.UserId, dataclasses.replace(profile))

		L.log(asab.LOG_NOTICE, "Credential created", struct_data={
			"provider": self.Type,
			"uid": credential.UserId,
			"wacid": generic.base64url_encode(credential.CredentialId),
		})


	async def get(self, user_id: str) -> Credential:
		credential = self.CredentialTable.get(user_id)
		if credential is None:
			raise exceptions.CredentialNotFoundError(user_id)
		return dataclasses.replace(credential)


	async def get_by_credential_id(self, credential_id: bytes) -> Credential:
		credential = self._find(lambda c: c.CredentialId == credential_id)
		if credential is None:
			raise exceptions.CredentialNotFoundError(generic.base64url_encode(credential_id))
		return dataclasses.replace(credential)


	async def get_by_token_hash(self, token_hash: str) -> Credential:
		credential = self._find(lambda c: generic.tokens_equal(c.BearerTokenHash, token_hash))
		if credential is None:
			raise exceptions.CredentialNotFoundError("<bearer token>")
		return dataclasses.replace(credential)


	async def get_profile(self, user_id: str) -> UserProfile:
		profile = self.ProfileTable.get(user_id)
		if profile is None:
			raise exceptions.CredentialNotFoundError(user_id)
		return dataclasses.replace(profile)


	async def update(self, user_id: str, update: dict, expected_sign_count: typing.Optional[int] = None):
		self._check_update(update)
		async with self.Lock:
			if user_id not in self.CredentialTable:
				raise exceptions.CredentialNotFoundError(user_id)
			if expected_sign_count is not None and self.CredentialTable[user_id].SignCount != expected_sign_count:
				raise exceptions.SignCountConflictError(user_id, expected_sign_count)

			with self._transaction(user_id):
				credential = self.CredentialTable[user_id]
				if "sign_count" in update:
					credential.SignCount = int(update["sign_count"])
				if "bearer_token_hash" in update:
					credential.BearerTokenHash = update["bearer_token_hash"]
				if "display_name" in update:
					credential.DisplayName = update["display_name"]

				if "display_name" in update or "credo" in update:
					profile = self.ProfileTable.get(user_id)
					if profile is None:
						raise exceptions.StorageError("Profile is missing", user_id=user_id)
					if "display_name" in update:
						profile.DisplayName = update["display_name"]
					if "credo" in update:
						profile.Credo = update["credo"]

		L.info("Credential updated", struct_data={
			"provider": self.Type, "uid": user_id, "fields": " ".join(sorted(update.keys()))})


	async def delete(self, user_id: str):
		async with self.Lock:
			if user_id not in self.CredentialTable:
				raise exceptions.CredentialNotFoundError(user_id)
			with self._transaction(user_id):
				self._remove(self.CredentialTable, user_id)
				self._remove(self.ProfileTable, user_id)

		L.log(asab.LOG_NOTICE, "Credential deleted", struct_data={"provider": self.Type, "uid": user_id})


	@contextlib.contextmanager
	def _transaction(self, user_id):
		credential_snapshot = {k: dataclasses.replace(v) for k, v in self.CredentialTable.items()}
		profile_snapshot = {k: dataclasses.replace(v) for k, v in self.ProfileTable.items()}
		try:
			yield
		except Exception as e:
			self.CredentialTable = credential_snapshot
			self.ProfileTable = profile_snapshot
			L.error("Transaction rolled back: {}".format(e.__class__.__name__), struct_data={
				"provider": self.Type, "uid": user_id})
			if isinstance(e, exceptions.StorageError):
				raise
			raise exceptions.StorageError("Transaction failed", user_id=user_id) from e


	def _insert(self, table: dict, user_id: str, row):
		table[user_id] = row


	def _remove(self, table: dict, user_id: str):
		table.pop(user_id, None)


	def _find(self, predicate) -> typing.Optional[Credential]:
		for credential in self.CredentialTable.values():
			if predicate(credential):
				return credential
		return None
