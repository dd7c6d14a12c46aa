import asab.exceptions


class PassKeysDemoError(Exception):
	"""
	Generic PassKeys demo error
	"""
	pass


class BadRequestError(PassKeysDemoError, asab.exceptions.ValidationError):
	"""
	Request is missing a field or a field is malformed
	"""
	def __init__(self, message, *args, field=None):
		self.Field = field
		super().__init__(message, *args)


class CredentialNotFoundError(PassKeysDemoError, KeyError):
	"""
	No credential matches the lookup
	"""
	def __init__(self, key, *args):
		self.Key = key
		super().__init__("Credential {!r} not found".format(self.Key), *args)


class AlreadyRegisteredError(PassKeysDemoError):
	"""
	User ID or credential ID is already registered
	"""
	def __init__(self, user_id, *args):
		self.UserId = user_id
		super().__init__("User {!r} is already registered".format(self.UserId), *args)


class SignCountConflictError(PassKeysDemoError):
	"""
	The stored signature counter changed between verification and write
	"""
	def __init__(self, user_id, expected, *args):
		self.UserId = user_id
		self.Expected = expected
		super().__init__(
			"Signature counter of {!r} is no longer {}".format(self.UserId, self.Expected), *args)


class StorageError(PassKeysDemoError):
	"""
	Storage operation failed and was rolled back
	"""
	def __init__(self, message, *args, user_id=None):
		self.UserId = user_id
		super().__init__(message, *args)


class SessionNotFoundError(PassKeysDemoError, KeyError):
	"""
	Missing or expired session
	"""
	def __init__(self, message, session_id=None, *args):
		self.SessionId = session_id
		super().__init__(message, *args)
