from .result import AuthError, Result
from .service import AuthenticationService
from .handler import AuthenticationHandler
from .dispatch import DispatchHandler

__all__ = [
	"AuthError",
	"Result",
	"AuthenticationService",
	"AuthenticationHandler",
	"DispatchHandler",
]
