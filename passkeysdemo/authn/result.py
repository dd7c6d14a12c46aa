import dataclasses
import enum
import typing

import asab.web.rest


class AuthError(enum.Enum):
	BadRequest = "bad-request"
	UserNotFound = "user-not-found"
	AlreadyRegistered = "already-registered"
	AuthorizationMismatch = "authorization-mismatch"
	VerificationFailed = "verification-failed"
	StepUpRequired = "step-up-required"
	StorageFailure = "storage-failure"


HTTP_STATUS = {
	AuthError.BadRequest: 400,
	AuthError.UserNotFound: 404,
	AuthError.AlreadyRegistered: 409,
	AuthError.AuthorizationMismatch: 401,
	AuthError.VerificationFailed: 401,
	AuthError.StepUpRequired: 403,
	AuthError.StorageFailure: 500,
}


@dataclasses.dataclass(frozen=True)
class Result:
	"""
	Outcome of a verification or of a state machine transition:
	either a value, or an error with an optional detail for the server log.
	"""
	Value: typing.Any = None
	Error: typing.Optional[AuthError] = None
	# Never sent to the client
	Detail: typing.Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.Error is None

	@classmethod
	def success(cls, value=None) -> "Result":
		return cls(Value=value)

	@classmethod
	def failure(cls, error: AuthError, detail: typing.Optional[str] = None) -> "Result":
		return cls(Error=error, Detail=detail)

	def http_status(self) -> int:
		if self.Error is None:
			return 200
		return HTTP_STATUS[self.Error]

	def rest_get(self) -> dict:
		if self.Error is None:
			d = {"result": "OK"}
			if isinstance(self.Value, dict):
				d.update(self.Value)
			return d
		return {"result": "ERROR", "error": self.Error.value}


def result_response(request, result: Result):
	"""
	Render the result as a JSON response. Error details stay in the server log.
	"""
	return asab.web.rest.json_response(request, result.rest_get(), status=result.http_status())
