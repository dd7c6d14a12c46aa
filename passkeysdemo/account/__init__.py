from .service import AccountService
from .handler import AccountHandler

__all__ = [
	"AccountService",
	"AccountHandler",
]
