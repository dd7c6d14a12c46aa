from .adapter import Session, PendingChallenge, ChallengePurpose, SessionState
from .service import SessionService
from .token import BearerTokenService

__all__ = [
	"Session",
	"PendingChallenge",
	"ChallengePurpose",
	"SessionState",
	"SessionService",
	"BearerTokenService",
]
