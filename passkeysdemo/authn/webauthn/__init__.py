from .service import WebAuthnService

__all__ = [
	"WebAuthnService",
]
