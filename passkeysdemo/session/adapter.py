import dataclasses
import datetime
import enum
import typing


class ChallengePurpose(enum.Enum):
	Create = "create"
	Login = "login"
	StepUp = "stepup"


class SessionState(enum.Enum):
	Anonymous = "anonymous"
	ChallengeIssued = "challenge-issued"
	Authenticated = "authenticated"


@dataclasses.dataclass
class PendingChallenge:
	"""
	Outstanding WebAuthn challenge together with what it was issued for
	"""
	Value: bytes
	Purpose: ChallengePurpose
	Expiration: datetime.datetime
	# None for a login with a discoverable credential
	UserId: typing.Optional[str] = None
	# Only for Create
	DisplayName: typing.Optional[str] = None
	# Only for StepUp: the account mutation to apply once the assertion is verified
	Mutation: typing.Optional[dict] = None

	def is_expired(self, now: typing.Optional[datetime.datetime] = None) -> bool:
		if now is None:
			now = datetime.datetime.now(datetime.timezone.utc)
		return now >= self.Expiration


@dataclasses.dataclass
class Session:
	"""
	Server-side state of one client, identified by the session cookie.

	The session is not durable. Losing it only loses the outstanding challenge
	and the login binding.
	"""
	Id: str
	CreatedAt: datetime.datetime
	Expiration: datetime.datetime
	Challenge: typing.Optional[PendingChallenge] = None
	# Login binding, set when a bearer token is issued within this session
	UserId: typing.Optional[str] = None
	BearerTokenHash: typing.Optional[str] = None

	@property
	def State(self) -> SessionState:
		if self.UserId is not None and self.BearerTokenHash is not None:
			return SessionState.Authenticated
		if self.Challenge is not None:
			return SessionState.ChallengeIssued
		return SessionState.Anonymous


	def is_expired(self, now: typing.Optional[datetime.datetime] = None) -> bool:
		if now is None:
			now = datetime.datetime.now(datetime.timezone.utc)
		return now >= self.Expiration
