from .service import CredentialsService

__all__ = [
	"CredentialsService",
]
