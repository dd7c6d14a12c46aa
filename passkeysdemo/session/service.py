import datetime
import logging
import secrets
import typing

import asab

from .adapter import Session, PendingChallenge, ChallengePurpose
from .. import exceptions

#

L = logging.getLogger(__name__)

#


class SessionService(asab.Service):
	"""
	In-memory store of server-side sessions.

	Each session holds at most one outstanding challenge and at most one login binding.
	All methods that read-and-modify a session are synchronous, so they cannot interleave
	with other coroutines on the event loop.
	"""

	SessionIdLength = 32

	def __init__(self, app, service_name="passkeysdemo.SessionService"):
		super().__init__(app, service_name)
		self.Sessions: typing.Dict[str, Session] = {}

		self.Expiration = datetime.timedelta(
			seconds=asab.Config.getseconds("passkeysdemo:session", "expiration"))
		self.ChallengeTimeout = datetime.timedelta(
			seconds=asab.Config.getseconds("passkeysdemo:webauthn", "challenge_timeout"))

		app.PubSub.subscribe("Application.tick/60!", self._on_tick)

		# Metrics
		self.MetricsService = app.get_service("asab.MetricsService")
		self.SessionGauge = self.MetricsService.create_gauge(
			"sessions", tags={"help": "Counts active sessions."}, init_values={"sessions": 0, "authenticated": 0})


	def _on_tick(self, event_name):
		self.delete_expired()
		self.SessionGauge.set("sessions", len(self.Sessions))
		self.SessionGauge.set("authenticated", sum(1 for s in self.Sessions.values() if s.UserId is not None))


	def new(self) -> Session:
		"""
		Build a session that is not stored yet. `store()` keeps it once it holds any state.
		"""
		now = datetime.datetime.now(datetime.timezone.utc)
		return Session(
			Id=secrets.token_urlsafe(self.SessionIdLength),
			CreatedAt=now,
			Expiration=now + self.Expiration,
		)


	def store(self, session: Session):
		self.Sessions[session.Id] = session
		L.info("Session created", struct_data={"sid": session.Id})


	def create(self) -> Session:
		session = self.new()
		self.store(session)
		return session


	def get(self, session_id: str) -> Session:
		session = self.Sessions.get(session_id)
		if session is None:
			raise exceptions.SessionNotFoundError("Session not found", session_id=session_id)
		if session.is_expired():
			self.delete(session_id)
			raise exceptions.SessionNotFoundError("Session expired", session_id=session_id)
		return session


	def touch(self, session: Session):
		session.Expiration = datetime.datetime.now(datetime.timezone.utc) + self.Expiration


	def delete(self, session_id: str):
		session = self.Sessions.pop(session_id, None)
		if session is not None:
			L.info("Session deleted", struct_data={"sid": session_id})


	def delete_expired(self) -> int:
		now = datetime.datetime.now(datetime.timezone.utc)
		expired = [session_id for session_id, session in self.Sessions.items() if session.is_expired(now)]
		for session_id in expired:
			del self.Sessions[session_id]
		if len(expired) > 0:
			L.info("Expired sessions deleted", struct_data={"count": len(expired)})
		return len(expired)


	def set_challenge(
		self, session: Session, value: bytes, purpose: ChallengePurpose,
		user_id: typing.Optional[str] = None,
		display_name: typing.Optional[str] = None,
		mutation: typing.Optional[dict] = None,
	) -> PendingChallenge:
		"""
		Store a new challenge in the session, replacing any outstanding one.
		"""
		challenge = PendingChallenge(
			Value=value,
			Purpose=purpose,
			Expiration=datetime.datetime.now(datetime.timezone.utc) + self.ChallengeTimeout,
			UserId=user_id,
			DisplayName=display_name,
			Mutation=mutation,
		)
		session.Challenge = challenge
		return challenge


	def pop_challenge(self, session: Session, purpose: ChallengePurpose) -> typing.Optional[PendingChallenge]:
		"""
		Remove the outstanding challenge from the session and return it.

		The challenge is consumed even when it does not match the purpose or is expired,
		in which case None is returned.
		"""
		challenge = session.Challenge
		session.Challenge = None
		if challenge is None:
			return None
		if challenge.Purpose != purpose:
			L.warning("Challenge purpose mismatch", struct_data={
				"sid": session.Id, "expected": purpose.value, "actual": challenge.Purpose.value})
			return None
		if challenge.is_expired():
			L.info("Challenge expired", struct_data={"sid": session.Id, "purpose": purpose.value})
			return None
		return challenge


	def clear_challenge(self, session: Session):
		session.Challenge = None


	def bind(self, session: Session, user_id: str, token_hash: str):
		session.UserId = user_id
		session.BearerTokenHash = token_hash


	def unbind(self, session: Session):
		session.UserId = None
		session.BearerTokenHash = None


	def clear(self, session: Session):
		"""
		Drop everything the session holds. The session itself (and its cookie) stays usable.
		"""
		session.Challenge = None
		self.unbind(session)


	def unbind_user(self, user_id: str):
		"""
		Clear the login binding of every session bound to the user.
		"""
		for session in self.Sessions.values():
			if session.UserId == user_id:
				self.unbind(session)
