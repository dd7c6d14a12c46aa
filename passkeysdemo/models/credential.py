import dataclasses
import typing


@dataclasses.dataclass
class Credential:
	"""
	Authentication data of one registered authenticator
	"""
	UserId: str
	CredentialId: bytes
	DisplayName: str
	PublicKey: bytes
	SignCount: int = 0
	# SHA-256 digest of the active bearer token, None when logged out
	BearerTokenHash: typing.Optional[str] = None


@dataclasses.dataclass
class UserProfile:
	"""
	Application data of a user, kept apart from the authentication data
	"""
	UserId: str
	DisplayName: str
	Credo: str = ""

	def rest_get(self) -> dict:
		return {
			"displayName": self.DisplayName,
			"credo": self.Credo,
		}
