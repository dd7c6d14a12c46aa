from .credential import Credential, UserProfile

__all__ = [
	"Credential",
	"UserProfile",
]
