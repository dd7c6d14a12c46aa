import logging
import typing

import asab
import aiomysql
import pymysql
import pymysql.constants.CLIENT

from .abc import CredentialsProviderABC
from ...models import Credential, UserProfile
from ... import exceptions, generic

#

L = logging.getLogger(__name__)

#


class MySQLCredentialsProvider(CredentialsProviderABC):
	"""
	Credential store backed by two MySQL tables, see `etc/mysql.sql`.

	Writes that touch both tables run in one transaction on one connection.
	"""

	Type = "mysql"

	ConfigDefaults = {
		"host": "localhost",
		"port": "3306",
		"database": "passkeys",
		"user": "root",
		"password": "",
		"credentials_table": "webauthn_credentials",
		"profile_table": "passkeys_demo_users",
	}

	# Provider update keys mapped to credential table columns
	CredentialColumns = {
		"sign_count": "sign_count",
		"bearer_token_hash": "bearer_token_hash",
		"display_name": "display_name",
	}

	ProfileColumns = {
		"display_name": "display_name",
		"credo": "credo",
	}


	def __init__(self, app, config_section_name="passkeysdemo:credentials:mysql", config=None):
		super().__init__(app, config_section_name, config=config)
		self.ConnectionParams = {
			"host": self.Config.get("host"),
			"port": self.Config.getint("port"),
			"db": self.Config.get("database"),
			"user": self.Config.get("user"),
			"autocommit": False,
			# Matched rather than changed rows, so that a conditional UPDATE can be checked by rowcount
			"client_flag": pymysql.constants.CLIENT.FOUND_ROWS,
		}
		password = self.Config.get("password")
		if len(password) > 0:
			self.ConnectionParams["password"] = password

		self.CredentialsTable = self.Config.get("credentials_table")
		self.ProfileTable = self.Config.get("profile_table")


	def get_info(self) -> dict:
		info = super().get_info()
		info["host"] = self.ConnectionParams["host"]
		info["database"] = self.ConnectionParams["db"]
		return info


	async def create(self, credential: Credential, profile: UserProfile):
		async with aiomysql.connect(**self.ConnectionParams) as connection:
			try:
				async with connection.cursor(aiomysql.DictCursor) as cursor:
					await cursor.execute(
						"INSERT INTO `{}` (user_id, credential_id, display_name, public_key, sign_count, bearer_token_hash)"
						" VALUES (%(user_id)s, %(credential_id)s, %(display_name)s, %(public_key)s, %(sign_count)s, %(bearer_token_hash)s)".format(
							self.CredentialsTable),
						{
							"user_id": credential.UserId,
							"credential_id": credential.CredentialId,
							"display_name": credential.DisplayName,
							"public_key": credential.PublicKey,
							"sign_count": credential.SignCount,
							"bearer_token_hash": credential.BearerTokenHash,
						}
					)
					await cursor.execute(
						"INSERT INTO `{}` (user_id, display_name, credo) VALUES (%(user_id)s, %(display_name)s, %(credo)s)".format(
							self.ProfileTable),
						{
							"user_id": profile.UserId,
							"display_name": profile.DisplayName,
							"credo": profile.Credo,
						}
					)
				await connection.commit()
			except pymysql.err.IntegrityError as e:
				await connection.rollback()
				raise exceptions.AlreadyRegisteredError(credential.UserId) from e
			except pymysql.err.MySQLError as e:
				await connection.rollback()
				raise exceptions.StorageError("Cannot create credential: {}".format(e), user_id=credential.UserId) from e

		L.log(asab.LOG_NOTICE, "Credential created", struct_data={
			"provider": self.Type,
			"uid": credential.UserId,
			"wacid": generic.base64url_encode(credential.CredentialId),
		})


	async def get(self, user_id: str) -> Credential:
		row = await self._fetch_credential("user_id", user_id)
		if row is None:
			raise exceptions.CredentialNotFoundError(user_id)
		return row


	async def get_by_credential_id(self, credential_id: bytes) -> Credential:
		row = await self._fetch_credential("credential_id", credential_id)
		if row is None:
			raise exceptions.CredentialNotFoundError(generic.base64url_encode(credential_id))
		return row


	async def get_by_token_hash(self, token_hash: str) -> Credential:
		row = await self._fetch_credential("bearer_token_hash", token_hash)
		if row is None or not generic.tokens_equal(row.BearerTokenHash, token_hash):
			raise exceptions.CredentialNotFoundError("<bearer token>")
		return row


	async def get_profile(self, user_id: str) -> UserProfile:
		async with aiomysql.connect(**self.ConnectionParams) as connection:
			async with connection.cursor(aiomysql.DictCursor) as cursor:
				await cursor.execute(
					"SELECT user_id, display_name, credo FROM `{}` WHERE user_id = %(user_id)s".format(self.ProfileTable),
					{"user_id": user_id}
				)
				result = await cursor.fetchone()
		if result is None:
			raise exceptions.CredentialNotFoundError(user_id)
		return UserProfile(
			UserId=result["user_id"],
			DisplayName=result["display_name"],
			Credo=result.get("credo") or "",
		)


	async def update(self, user_id: str, update: dict, expected_sign_count: typing.Optional[int] = None):
		self._check_update(update)

		credential_set = {
			column: update[key]
			for key, column in self.CredentialColumns.items()
			if key in update
		}
		profile_set = {
			column: update[key]
			for key, column in self.ProfileColumns.items()
			if key in update
		}

		async with aiomysql.connect(**self.ConnectionParams) as connection:
			try:
				async with connection.cursor(aiomysql.DictCursor) as cursor:
					query = "UPDATE `{}` SET {} WHERE user_id = %(__user_id)s".format(
						self.CredentialsTable,
						", ".join("{0} = %({0})s".format(column) for column in credential_set) or "user_id = user_id",
					)
					params = dict(credential_set)
					params["__user_id"] = user_id
					if expected_sign_count is not None:
						query += " AND sign_count = %(__expected_sign_count)s"
						params["__expected_sign_count"] = expected_sign_count
					await cursor.execute(query, params)

					if cursor.rowcount == 0:
						await connection.rollback()
						await self._raise_missing_or_conflict(cursor, user_id, expected_sign_count)

					if len(profile_set) > 0:
						params = dict(profile_set)
						params["__user_id"] = user_id
						await cursor.execute(
							"UPDATE `{}` SET {} WHERE user_id = %(__user_id)s".format(
								self.ProfileTable,
								", ".join("{0} = %({0})s".format(column) for column in profile_set),
							),
							params
						)
				await connection.commit()
			except pymysql.err.MySQLError as e:
				await connection.rollback()
				raise exceptions.StorageError("Cannot update credential: {}".format(e), user_id=user_id) from e

		L.info("Credential updated", struct_data={
			"provider": self.Type, "uid": user_id, "fields": " ".join(sorted(update.keys()))})


	async def delete(self, user_id: str):
		async with aiomysql.connect(**self.ConnectionParams) as connection:
			try:
				async with connection.cursor(aiomysql.DictCursor) as cursor:
					await cursor.execute(
						"DELETE FROM `{}` WHERE user_id = %(user_id)s".format(self.CredentialsTable),
						{"user_id": user_id}
					)
					if cursor.rowcount == 0:
						await connection.rollback()
						raise exceptions.CredentialNotFoundError(user_id)
					await cursor.execute(
						"DELETE FROM `{}` WHERE user_id = %(user_id)s".format(self.ProfileTable),
						{"user_id": user_id}
					)
				await connection.commit()
			except pymysql.err.MySQLError as e:
				await connection.rollback()
				raise exceptions.StorageError("Cannot delete credential: {}".format(e), user_id=user_id) from e

		L.log(asab.LOG_NOTICE, "Credential deleted", struct_data={"provider": self.Type, "uid": user_id})


	async def _fetch_credential(self, column: str, value) -> typing.Optional[Credential]:
		async with aiomysql.connect(**self.ConnectionParams) as connection:
			async with connection.cursor(aiomysql.DictCursor) as cursor:
				await cursor.execute(
					"SELECT user_id, credential_id, display_name, public_key, sign_count, bearer_token_hash"
					" FROM `{}` WHERE {} = %(value)s".format(self.CredentialsTable, column),
					{"value": value}
				)
				result = await cursor.fetchone()
		if result is None:
			return None
		return Credential(
			UserId=result["user_id"],
			CredentialId=bytes(result["credential_id"]),
			DisplayName=result["display_name"],
			PublicKey=bytes(result["public_key"]),
			SignCount=int(result["sign_count"]),
			BearerTokenHash=result["bearer_token_hash"],
		)


	async def _raise_missing_or_conflict(self, cursor, user_id, expected_sign_count):
		await cursor.execute(
			"SELECT sign_count FROM `{}` WHERE user_id = %(user_id)s".format(self.CredentialsTable),
			{"user_id": user_id}
		)
		result = await cursor.fetchone()
		if result is None:
			raise exceptions.CredentialNotFoundError(user_id)
		if expected_sign_count is not None:
			raise exceptions.SignCountConflictError(user_id, expected_sign_count)
		raise exceptions.StorageError("Credential row was not updated", user_id=user_id)
