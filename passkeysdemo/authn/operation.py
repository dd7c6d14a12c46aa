import dataclasses
import enum
import typing

import fastjsonschema

from . import schema
from .. import exceptions
from ..generic import base64url_decode


class Operation(enum.Enum):
	"""
	Values of the `operation` query argument of the single-endpoint dispatcher
	"""
	Create = "create"
	Login = "login"
	Logout = "logout"
	Read = "read"
	Update = "update"
	Delete = "delete"


@dataclasses.dataclass(frozen=True)
class BeginCreateRequest:
	UserId: str
	DisplayName: str


@dataclasses.dataclass(frozen=True)
class CompleteCreateRequest:
	ClientDataJSON: bytes
	AttestationObject: bytes


@dataclasses.dataclass(frozen=True)
class BeginLoginRequest:
	UserId: typing.Optional[str] = None


@dataclasses.dataclass(frozen=True)
class AssertionRequest:
	"""
	Signed assertion, used both to complete a login and to complete a step-up
	"""
	ClientDataJSON: bytes
	AuthenticatorData: bytes
	Signature: bytes
	CredentialId: bytes


@dataclasses.dataclass(frozen=True)
class UpdateProfileRequest:
	DisplayName: str
	Credo: str = ""


@dataclasses.dataclass(frozen=True)
class BeginStepUpRequest:
	Operation: Operation
	# Only for Operation.Update
	Update: typing.Optional[UpdateProfileRequest] = None


_VALIDATORS = {}


def _validate(json_schema: dict, data) -> dict:
	validator = _VALIDATORS.get(id(json_schema))
	if validator is None:
		validator = fastjsonschema.compile(json_schema)
		_VALIDATORS[id(json_schema)] = validator
	if not isinstance(data, dict):
		raise exceptions.BadRequestError("Request body must be a JSON object")
	try:
		return validator(data)
	except fastjsonschema.JsonSchemaException as e:
		raise exceptions.BadRequestError("Invalid request: {}".format(e.message), field=e.name) from e


def _decode(data: dict, field: str) -> bytes:
	try:
		value = base64url_decode(data[field])
	except ValueError as e:
		raise exceptions.BadRequestError("Field {!r} is not valid base64url".format(field), field=field) from e
	if len(value) == 0:
		raise exceptions.BadRequestError("Field {!r} is empty".format(field), field=field)
	return value


def parse_begin_create(data: dict) -> BeginCreateRequest:
	data = _validate(schema.BEGIN_CREATE, data)
	return BeginCreateRequest(
		UserId=data["userId"],
		DisplayName=data["displayName"].strip(),
	)


def parse_complete_create(data: dict) -> CompleteCreateRequest:
	data = _validate(schema.COMPLETE_CREATE, data)
	return CompleteCreateRequest(
		ClientDataJSON=_decode(data, "clientDataJSON"),
		AttestationObject=_decode(data, "attestationObject"),
	)


def parse_begin_login(data: typing.Optional[dict]) -> BeginLoginRequest:
	data = _validate(schema.BEGIN_LOGIN, data or {})
	return BeginLoginRequest(UserId=data.get("userId"))


def parse_assertion(data: dict) -> AssertionRequest:
	data = _validate(schema.ASSERTION, data)
	return AssertionRequest(
		ClientDataJSON=_decode(data, "clientDataJSON"),
		AuthenticatorData=_decode(data, "authenticatorData"),
		Signature=_decode(data, "signature"),
		CredentialId=_decode(data, "credentialId"),
	)


def parse_update_profile(data: dict) -> UpdateProfileRequest:
	data = _validate(schema.UPDATE_PROFILE, data)
	return UpdateProfileRequest(
		DisplayName=data["displayName"].strip(),
		Credo=data.get("credo") or "",
	)


def parse_begin_stepup(data: dict) -> BeginStepUpRequest:
	data = _validate(schema.BEGIN_STEPUP, data)
	operation = Operation(data["operation"])
	if operation == Operation.Update:
		if "displayName" not in data:
			raise exceptions.BadRequestError("Profile update requires 'displayName'", field="displayName")
		return BeginStepUpRequest(Operation=operation, Update=parse_update_profile(data))
	return BeginStepUpRequest(Operation=operation)
