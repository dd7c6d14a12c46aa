import logging
import typing

import asab
import bson
import motor.motor_asyncio
import pymongo
import pymongo.errors

from .abc import CredentialsProviderABC
from ...models import Credential, UserProfile
from ... import exceptions, generic

#

L = logging.getLogger(__name__)

#


class MongoDBCredentialsProvider(CredentialsProviderABC):
	"""
	Credential store backed by two MongoDB collections.

	Writes spanning both collections use multi-document transactions,
	which require MongoDB running as a replica set.
	"""

	Type = "mongodb"

	ConfigDefaults = {
		"mongodb_uri": "mongodb://localhost:27017",
		"database": "passkeys",
		"username": "",
		"password": "",
		"credentials_collection": "wac",
		"profile_collection": "wap",
	}


	def __init__(self, app, config_section_name="passkeysdemo:credentials:mongodb", config=None):
		super().__init__(app, config_section_name, config=config)

		self.ConnectionParams = {
			"host": self.Config.get("mongodb_uri"),
		}
		for option in ["username", "password"]:
			value = self.Config.get(option, "")
			if len(value) > 0:
				self.ConnectionParams[option] = value

		self.Client = motor.motor_asyncio.AsyncIOMotorClient(**self.ConnectionParams)
		self.Database = self.Client.get_database(self.Config.get("database"))
		self.CredentialsCollection = self.Database.get_collection(self.Config.get("credentials_collection"))
		self.ProfileCollection = self.Database.get_collection(self.Config.get("profile_collection"))

		app.PubSub.subscribe("Application.init!", self._on_init)


	def get_info(self) -> dict:
		info = super().get_info()
		info["database"] = self.Database.name
		return info


	async def _on_init(self, event_name):
		try:
			await self.CredentialsCollection.create_index([("cid", pymongo.ASCENDING)], unique=True)
			await self.CredentialsCollection.create_index(
				[("th", pymongo.ASCENDING)],
				partialFilterExpression={"th": {"$type": "string"}}
			)
		except Exception as e:
			L.warning("{}; fix it and restart the app".format(e))


	async def create(self, credential: Credential, profile: UserProfile):
		try:
			async with await self.Client.start_session() as session:
				async with session.start_transaction():
					await self.CredentialsCollection.insert_one({
						"_id": credential.UserId,
						"cid": bson.Binary(credential.CredentialId),
						"dn": credential.DisplayName,
						"pk": bson.Binary(credential.PublicKey),
						"sc": credential.SignCount,
						"th": credential.BearerTokenHash,
					}, session=session)
					await self.ProfileCollection.insert_one({
						"_id": profile.UserId,
						"dn": profile.DisplayName,
						"credo": profile.Credo,
					}, session=session)
		except pymongo.errors.DuplicateKeyError as e:
			raise exceptions.AlreadyRegisteredError(credential.UserId) from e
		except pymongo.errors.PyMongoError as e:
			raise exceptions.StorageError("Cannot create credential: {}".format(e), user_id=credential.UserId) from e

		L.log(asab.LOG_NOTICE, "Credential created", struct_data={
			"provider": self.Type,
			"uid": credential.UserId,
			"wacid": generic.base64url_encode(credential.CredentialId),
		})


	async def get(self, user_id: str) -> Credential:
		obj = await self.CredentialsCollection.find_one({"_id": user_id})
		if obj is None:
			raise exceptions.CredentialNotFoundError(user_id)
		return self._deserialize(obj)


	async def get_by_credential_id(self, credential_id: bytes) -> Credential:
		obj = await self.CredentialsCollection.find_one({"cid": bson.Binary(credential_id)})
		if obj is None:
			raise exceptions.CredentialNotFoundError(generic.base64url_encode(credential_id))
		return self._deserialize(obj)


	async def get_by_token_hash(self, token_hash: str) -> Credential:
		obj = await self.CredentialsCollection.find_one({"th": token_hash})
		if obj is None or not generic.tokens_equal(obj.get("th"), token_hash):
			raise exceptions.CredentialNotFoundError("<bearer token>")
		return self._deserialize(obj)


	async def get_profile(self, user_id: str) -> UserProfile:
		obj = await self.ProfileCollection.find_one({"_id": user_id})
		if obj is None:
			raise exceptions.CredentialNotFoundError(user_id)
		return UserProfile(UserId=obj["_id"], DisplayName=obj["dn"], Credo=obj.get("credo", ""))


	async def update(self, user_id: str, update: dict, expected_sign_count: typing.Optional[int] = None):
		self._check_update(update)

		credential_set = {}
		profile_set = {}
		if "sign_count" in update:
			credential_set["sc"] = int(update["sign_count"])
		if "bearer_token_hash" in update:
			credential_set["th"] = update["bearer_token_hash"]
		if "display_name" in update:
			credential_set["dn"] = update["display_name"]
			profile_set["dn"] = update["display_name"]
		if "credo" in update:
			profile_set["credo"] = update["credo"]

		query = {"_id": user_id}
		if expected_sign_count is not None:
			query["sc"] = expected_sign_count

		try:
			async with await self.Client.start_session() as session:
				async with session.start_transaction():
					if len(credential_set) > 0:
						result = await self.CredentialsCollection.update_one(query, {"$set": credential_set}, session=session)
						matched = result.matched_count
					else:
						matched = await self.CredentialsCollection.count_documents(query, session=session)
					if matched == 0:
						if await self.CredentialsCollection.count_documents({"_id": user_id}, session=session) == 0:
							raise exceptions.CredentialNotFoundError(user_id)
						raise exceptions.SignCountConflictError(user_id, expected_sign_count)
					if len(profile_set) > 0:
						await self.ProfileCollection.update_one({"_id": user_id}, {"$set": profile_set}, session=session)
		except pymongo.errors.PyMongoError as e:
			raise exceptions.StorageError("Cannot update credential: {}".format(e), user_id=user_id) from e

		L.info("Credential updated", struct_data={
			"provider": self.Type, "uid": user_id, "fields": " ".join(sorted(update.keys()))})


	async def delete(self, user_id: str):
		try:
			async with await self.Client.start_session() as session:
				async with session.start_transaction():
					result = await self.CredentialsCollection.delete_one({"_id": user_id}, session=session)
					if result.deleted_count == 0:
						raise exceptions.CredentialNotFoundError(user_id)
					await self.ProfileCollection.delete_one({"_id": user_id}, session=session)
		except pymongo.errors.PyMongoError as e:
			raise exceptions.StorageError("Cannot delete credential: {}".format(e), user_id=user_id) from e

		L.log(asab.LOG_NOTICE, "Credential deleted", struct_data={"provider": self.Type, "uid": user_id})


	def _deserialize(self, obj: dict) -> Credential:
		return Credential(
			UserId=obj["_id"],
			CredentialId=bytes(obj["cid"]),
			DisplayName=obj["dn"],
			PublicKey=bytes(obj["pk"]),
			SignCount=int(obj.get("sc", 0)),
			BearerTokenHash=obj.get("th"),
		)
