from .abc import CredentialsProviderABC

__all__ = [
	"CredentialsProviderABC",
]
